# backend/pixelwall/exceptions.py


class WallError(Exception):
    """
    Base class for errors that reach the caller.
    Each subclass has a stable `code` and an HTTP status.
    """

    code = "wall_error"
    status_code = 400

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InvalidRequestError(WallError):
    code = "invalid_request"
    status_code = 400


class OutOfBoundsError(WallError):
    code = "out_of_bounds"
    status_code = 422


class SpaceTakenError(WallError):
    code = "space_taken"
    status_code = 409


class NoSpaceError(WallError):
    code = "no_space"
    status_code = 409


class NotFoundError(WallError):
    code = "not_found"
    status_code = 404


class StoreUnavailableError(WallError):
    code = "store_unavailable"
    status_code = 503


class TransientStoreError(Exception):
    """
    The store aborted a transaction for a reason that may go away on retry
    (serialization failure, deadlock, writer lock timeout).
    Never surfaced to the caller as-is.
    """


class LockTimeoutError(TransientStoreError):
    pass
