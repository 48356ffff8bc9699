"""Error taxonomy shared by services and the HTTP layer.

Services raise these; the exception handlers in app.main turn them into
`{"success": false, "message": ...}` responses with the matching status code.
"""


class FileHostError(Exception):
    """Base class. Subclasses pin the HTTP status they map to."""

    status_code = 500
    default_message = "Terjadi kesalahan pada server"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(FileHostError):
    status_code = 400
    default_message = "Permintaan tidak valid"


class AuthError(FileHostError):
    status_code = 401
    default_message = "API key tidak valid"


class NotFound(FileHostError):
    status_code = 404
    default_message = "File tidak ditemukan"


class PayloadTooLarge(FileHostError):
    status_code = 413
    default_message = "Ukuran file melebihi batas 100MB"


class RangeNotSatisfiable(FileHostError):
    """Raised for a Range header that cannot be served against `file_size`."""

    status_code = 416
    default_message = "Range tidak valid"

    def __init__(self, file_size: int, message: str | None = None):
        self.file_size = file_size
        super().__init__(message)


class InternalError(FileHostError):
    status_code = 500
