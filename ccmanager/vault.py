"""
Credential vaults for CCManager.

A vault is opaque key/value secret storage. Every operation is idempotent:
saving overwrites, deleting a missing key is a no-op, and loading a missing
key returns None.
"""

import json
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path

from cryptography.fernet import Fernet, InvalidToken

from ccmanager.exceptions import ConfigurationError
from ccmanager.logging import get_logger

logger = get_logger("vault")


def credential_key(provider: str) -> str:
    """Vault key under which a provider's token is stored."""
    return f"{provider}.token"


class CredentialVault(ABC):
    """Abstract base class for secret storage."""

    @abstractmethod
    def save(self, key: str, value: str) -> None:
        """Store a secret, replacing any previous value."""
        pass

    @abstractmethod
    def load(self, key: str) -> str | None:
        """Return the secret for key, or None when absent."""
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a secret if present."""
        pass


class MemoryVault(CredentialVault):
    """Process-local vault, for tests and ephemeral runs."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._secrets: dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def save(self, key: str, value: str) -> None:
        with self._lock:
            self._secrets[key] = value

    def load(self, key: str) -> str | None:
        with self._lock:
            return self._secrets.get(key)

    def delete(self, key: str) -> None:
        with self._lock:
            self._secrets.pop(key, None)


class FileVault(CredentialVault):
    """
    Vault persisted as a single Fernet-encrypted JSON document.

    The encryption key is kept in a separate file next to the vault (or at
    ``key_path``). Both files are created with mode 0600 and the vault is
    rewritten whole, through a temporary file and rename, on each change, so
    readers never observe a partial write.
    """

    def __init__(self, path: str | Path, key_path: str | Path | None = None) -> None:
        self.path = Path(path).expanduser()
        self.key_path = (
            Path(key_path).expanduser() if key_path else self.path.with_suffix(".key")
        )
        self._lock = threading.Lock()
        self._fernet = Fernet(self._load_or_create_key())

    def save(self, key: str, value: str) -> None:
        with self._lock:
            secrets = self._read()
            secrets[key] = value
            self._write(secrets)

    def load(self, key: str) -> str | None:
        with self._lock:
            return self._read().get(key)

    def delete(self, key: str) -> None:
        with self._lock:
            secrets = self._read()
            if key not in secrets:
                return
            del secrets[key]
            self._write(secrets)

    def _load_or_create_key(self) -> bytes:
        if self.key_path.exists():
            return self.key_path.read_bytes().strip()

        key = Fernet.generate_key()
        atomic_write(self.key_path, key)
        return key

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            plaintext = self._fernet.decrypt(self.path.read_bytes())
        except InvalidToken as e:
            raise ConfigurationError(
                f"Credential vault {self.path} cannot be decrypted with {self.key_path}"
            ) from e
        return json.loads(plaintext)

    def _write(self, secrets: dict[str, str]) -> None:
        payload = self._fernet.encrypt(json.dumps(secrets).encode("utf-8"))
        atomic_write(self.path, payload)
        logger.debug("Wrote %d secret(s) to %s", len(secrets), self.path)


def atomic_write(path: Path, data: bytes) -> None:
    """Write data to path via a 0600 temporary file and rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    try:
        os.chmod(tmp_name, 0o600)
        with os.fdopen(fd, "wb") as tmp:
            tmp.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
