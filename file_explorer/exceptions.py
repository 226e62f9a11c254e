"""
Custom exception hierarchy for the file explorer.

Storage and probe errors are raised by the builder/store layer. Gateway
errors carry the HTTP status and the short error title returned to clients.
"""


class FileExplorerError(Exception):
    """Base exception for all file explorer errors."""
    pass


class ProbeError(FileExplorerError):
    """Raised when the audio probe tool fails or returns unusable output."""
    pass


class ManifestWriteError(FileExplorerError):
    """Raised when manifest.json cannot be written."""
    pass


class ManifestEncodeError(FileExplorerError):
    """Raised when a manifest cannot be serialized to JSON."""
    pass


class ManifestNotFoundError(FileExplorerError):
    """Raised when a persisted manifest is missing or unreadable."""
    pass


class ManifestDecodeError(FileExplorerError):
    """Raised when a persisted manifest is not valid JSON."""
    pass


class GatewayError(FileExplorerError):
    """A request rejected by the access gateway."""
    status_code = 500
    error = "Server Error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.error, "message": self.message}


class BadRequest(GatewayError):
    status_code = 400
    error = "Bad Request"


class Unauthorized(GatewayError):
    status_code = 401
    error = "Unauthorized"


class Forbidden(GatewayError):
    status_code = 403
    error = "Forbidden"


class NotFound(GatewayError):
    status_code = 404
    error = "Not Found"


class RateLimited(GatewayError):
    status_code = 429
    error = "Too Many Requests"


class ServerError(GatewayError):
    status_code = 500
    error = "Server Error"
