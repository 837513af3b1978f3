"""CCManager type definitions.

This module exports all data model types used by the package.
"""

from ccmanager.types.auth import (
    Authenticated,
    AuthState,
    Credentials,
    Provider,
    Unauthenticated,
)
from ccmanager.types.changes import ChangeType, FileChange
from ccmanager.types.repos import Repository
from ccmanager.types.sessions import (
    AgentCommand,
    AgentSelector,
    AgentSession,
    CommandStatus,
)
from ccmanager.types.usage import AssistantModel, TimeRange, UsageMetric, UsageSample

__all__ = [
    # Auth types
    "Provider",
    "Credentials",
    "AuthState",
    "Authenticated",
    "Unauthenticated",
    # Repository types
    "Repository",
    # Change types
    "ChangeType",
    "FileChange",
    # Session types
    "AgentCommand",
    "AgentSelector",
    "AgentSession",
    "CommandStatus",
    # Usage types
    "AssistantModel",
    "TimeRange",
    "UsageMetric",
    "UsageSample",
]
