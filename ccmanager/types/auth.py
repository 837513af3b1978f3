"""Provider credentials and authentication state."""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class Provider(str, Enum):
    """Remote services the application authenticates against."""

    GITHUB = "github"
    CLAUDE = "claude"
    CODEX = "codex"


@dataclass(frozen=True)
class Credentials:
    """
    A provider credential.

    ``token`` is the secret and lives in the credential vault; only the
    metadata is written to the settings blob.
    """

    token: str
    username: str | None = None
    organization_id: str | None = None

    def metadata(self) -> dict[str, Any]:
        return {"username": self.username, "organization_id": self.organization_id}

    def __repr__(self) -> str:
        return (
            f"Credentials(token='[REDACTED]', username={self.username!r}, "
            f"organization_id={self.organization_id!r})"
        )


@dataclass(frozen=True)
class Unauthenticated:
    """No usable credential for the provider."""

    provider: Provider

    @property
    def is_authenticated(self) -> bool:
        return False


@dataclass(frozen=True)
class Authenticated:
    """A credential is held for the provider."""

    provider: Provider
    username: str | None = None
    organization_id: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return True


AuthState = Unauthenticated | Authenticated
