class RelayError(Exception):
    """Base for failures that end a relay request with an HTTP error."""
    status_code = 500
    # plain-text errors are the ones raised before any upstream call
    as_json = True

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class MissingIdentifier(RelayError):
    status_code = 400
    as_json = False


class MisconfiguredCredential(RelayError):
    status_code = 500
    as_json = False


class UpstreamNotFound(RelayError):
    pass


class UpstreamFetchFailed(RelayError):
    pass


class UpstreamUnavailable(RelayError):
    status_code = 502


class StreamInterrupted(RelayError):
    status_code = 500
