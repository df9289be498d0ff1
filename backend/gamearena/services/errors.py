class ArenaError(Exception):
    """Base class for failures raised by the service layer.

    Routes let these propagate; the app-level handler in ``gamearena.main``
    renders them as ``{"detail": ...}`` with ``status_code``.
    """

    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class InvalidRequestError(ArenaError):
    status_code = 400


class InsufficientFundsError(ArenaError):
    status_code = 402


class PermissionDeniedError(ArenaError):
    status_code = 403


class NotFoundError(ArenaError):
    status_code = 404


class ConflictError(ArenaError):
    status_code = 409
