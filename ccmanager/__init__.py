"""CCManager - drive coding assistants against local working copies."""

from ccmanager.clients import (
    AssistantClient,
    AssistantContext,
    AssistantReply,
    CommandStream,
    RepositoryCatalog,
)
from ccmanager.context import AppContext
from ccmanager.coordinator import SessionCoordinator
from ccmanager.events import Observable, StateEvent
from ccmanager.exceptions import (
    ApiError,
    CCManagerError,
    CloneFailedError,
    CommandFailedError,
    ConfigurationError,
    GitError,
    InvalidResponseError,
    NoActiveSessionError,
    NoLocalPathError,
    NotAuthenticatedError,
    TransportError,
)
from ccmanager.git import GitExecutor, WorkingCopyBridge, parse_name_status
from ccmanager.logging import configure_logging, get_logger
from ccmanager.settings import Settings, SettingsStore
from ccmanager.transport import HTTPTransport
from ccmanager.usage import UsageLedger
from ccmanager.vault import CredentialVault, FileVault, MemoryVault

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Application
    "AppContext",
    "SessionCoordinator",
    # Clients
    "AssistantClient",
    "AssistantContext",
    "AssistantReply",
    "CommandStream",
    "RepositoryCatalog",
    # Working copies
    "GitExecutor",
    "WorkingCopyBridge",
    "parse_name_status",
    # Usage
    "UsageLedger",
    # Settings and credentials
    "Settings",
    "SettingsStore",
    "CredentialVault",
    "FileVault",
    "MemoryVault",
    # Notifications
    "Observable",
    "StateEvent",
    # Exceptions
    "CCManagerError",
    "ConfigurationError",
    "NotAuthenticatedError",
    "InvalidResponseError",
    "ApiError",
    "TransportError",
    "GitError",
    "CloneFailedError",
    "NoLocalPathError",
    "CommandFailedError",
    "NoActiveSessionError",
    # Transport
    "HTTPTransport",
    # Logging
    "configure_logging",
    "get_logger",
]
