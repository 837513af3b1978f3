"""Agent session and command history models."""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from ccmanager.types.changes import FileChange
from ccmanager.types.repos import Repository


def _now() -> datetime:
    return datetime.now(timezone.utc)


class CommandStatus(str, Enum):
    """Lifecycle of a submitted command."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (CommandStatus.COMPLETED, CommandStatus.FAILED)


class AgentSelector(str, Enum):
    """Which assistant(s) a command is sent to."""

    CLAUDE = "claude"
    CODEX = "codex"
    BOTH = "both"


@dataclass(frozen=True)
class AgentCommand:
    """
    A natural-language command and its outcome.

    Instances are immutable: each status transition returns a new command
    with the same ``id``. Only commands in a terminal state are stored in a
    session.
    """

    command: str
    provider: str = "claude"
    status: CommandStatus = CommandStatus.PENDING
    output: str | None = None
    error: str | None = None
    timestamp: datetime = field(default_factory=_now)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def running(self) -> "AgentCommand":
        return self._transition(CommandStatus.RUNNING)

    def completed(self, output: str | None) -> "AgentCommand":
        return self._transition(CommandStatus.COMPLETED, output=output)

    def failed(self, error: str) -> "AgentCommand":
        return self._transition(CommandStatus.FAILED, error=error)

    def _transition(self, status: CommandStatus, **changes: Any) -> "AgentCommand":
        if self.status.is_terminal:
            raise ValueError(f"command {self.id} is already {self.status.value}")
        return replace(self, status=status, **changes)


@dataclass
class AgentSession:
    """
    A bounded interaction window with the assistant, scoped to one repository.

    ``commands`` is chronological. ``changes`` always holds the full current
    diff and is replaced wholesale on refresh.
    """

    repository: Repository
    commands: list[AgentCommand] = field(default_factory=list)
    changes: list[FileChange] = field(default_factory=list)
    start_time: datetime = field(default_factory=_now)
    end_time: datetime | None = None
    is_active: bool = True
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "repository" and "repository" in self.__dict__:
            raise AttributeError("a session's repository is fixed at creation")
        super().__setattr__(name, value)

    def end(self, when: datetime | None = None) -> None:
        self.end_time = when or _now()
        self.is_active = False
