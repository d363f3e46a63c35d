import argparse
import uvicorn


def main():
    parser = argparse.ArgumentParser(description="Range-preserving Google Drive media relay.")
    parser.add_argument("--host", default="0.0.0.0", help="Bind address")
    parser.add_argument("--port", type=int, default=3000, help="Listen port")
    parser.add_argument("--reload", action="store_true", help="Reload on code changes (dev only)")
    args = parser.parse_args()

    uvicorn.run("drive_relay.main:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
