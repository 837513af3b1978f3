"""CCManager exception classes."""


class CCManagerError(Exception):
    """Base exception for all CCManager errors."""

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        self.message = message
        super().__init__(f"[{code}] {message}")


class ConfigurationError(CCManagerError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str) -> None:
        super().__init__("CONFIGURATION_ERROR", message)


class NotAuthenticatedError(CCManagerError):
    """Raised when a provider call is made without a credential."""

    def __init__(self, provider: str, message: str | None = None) -> None:
        self.provider = provider
        super().__init__(
            "NOT_AUTHENTICATED",
            message or f"{provider.capitalize()} API key not configured",
        )


class InvalidResponseError(CCManagerError):
    """Raised when a remote response cannot be decoded."""

    def __init__(self, message: str = "Invalid response from remote API") -> None:
        super().__init__("INVALID_RESPONSE", message)


class ApiError(CCManagerError):
    """Raised on a non-success HTTP status from a remote API."""

    def __init__(self, status_code: int, message: str | None = None) -> None:
        self.status_code = status_code
        super().__init__("API_ERROR", message or f"API error: HTTP {status_code}")


class TransportError(CCManagerError):
    """Raised when the HTTP connection itself fails."""

    def __init__(self, message: str) -> None:
        super().__init__("CONNECTION_ERROR", message)


class GitError(CCManagerError):
    """Base for source control failures."""

    def __init__(self, code: str, message: str, stderr: str | None = None) -> None:
        self.stderr = stderr
        super().__init__(code, message)


class CloneFailedError(GitError):
    """Raised when git clone exits non-zero."""

    def __init__(self, stderr: str | None = None) -> None:
        super().__init__("CLONE_FAILED", "Failed to clone repository", stderr)


class NoLocalPathError(GitError):
    """Raised when a working-copy operation targets an uncloned repository."""

    def __init__(self) -> None:
        super().__init__("NO_LOCAL_PATH", "Repository has no local path")


class CommandFailedError(GitError):
    """Raised when a git command other than clone exits non-zero."""

    def __init__(self, stderr: str | None = None) -> None:
        super().__init__("COMMAND_FAILED", "Git command failed", stderr)


class NoActiveSessionError(CCManagerError):
    """Raised when a command is submitted without a current session."""

    def __init__(self) -> None:
        super().__init__("NO_ACTIVE_SESSION", "No active agent session")
