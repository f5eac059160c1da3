"""
Error types raised by the content clients.
"""

from typing import Optional


class ContentError(Exception):
    """Base class for content store errors."""
    status: int = 500
    code: str = "CONTENT_ERROR"


class AuthenticationError(ContentError):
    status = 401
    code = "AUTHENTICATION_ERROR"

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class NotFoundError(ContentError):
    status = 404
    code = "NOT_FOUND"

    def __init__(self, resource: str):
        super().__init__(f"{resource} not found")
        self.resource = resource


class ValidationError(ContentError):
    status = 400
    code = "VALIDATION_ERROR"


class ConfigurationError(ContentError):
    """Raised when the environment is missing settings a backend needs."""
    code = "CONFIGURATION_ERROR"


class GitHubApiError(ContentError):
    """Non-404 failure from the GitHub API or the raw-content host."""
    code = "GITHUB_API_ERROR"

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status if status is not None else 500


class WriteConflictError(GitHubApiError):
    """The file SHA sent with a write no longer matches the stored file."""
    code = "WRITE_CONFLICT"

    def __init__(self, path: str, status: int = 409):
        super().__init__(f"Write conflict on {path}: file changed since it was read", status)
        self.path = path
