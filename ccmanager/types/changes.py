"""Working-copy change records."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class ChangeType(str, Enum):
    """Kind of change git reports for a path."""

    ADDED = "Added"
    MODIFIED = "Modified"
    DELETED = "Deleted"
    RENAMED = "Renamed"


# git --name-status codes
STATUS_CODES: dict[str, ChangeType] = {
    "A": ChangeType.ADDED,
    "M": ChangeType.MODIFIED,
    "D": ChangeType.DELETED,
    "R": ChangeType.RENAMED,
}


@dataclass(frozen=True)
class FileChange:
    """A single changed path in a working copy."""

    file_path: str
    change_type: ChangeType
    additions: int = 0
    deletions: int = 0
    patch: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
