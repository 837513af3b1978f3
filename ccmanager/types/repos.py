"""Repository data model."""

from dataclasses import asdict, dataclass, replace
from datetime import datetime
from typing import Any


@dataclass(frozen=True, eq=False)
class Repository:
    """
    Repository metadata from the hosting provider.

    Equality and hashing use ``id`` only. The only field that changes over a
    repository's life is ``local_path``, set once a clone succeeds; use
    ``with_local_path`` to get the updated copy.
    """

    id: str
    name: str
    full_name: str
    owner: str
    description: str | None
    url: str
    default_branch: str
    is_private: bool
    language: str | None
    stargazers_count: int
    forks_count: int
    open_issues_count: int
    created_at: datetime
    updated_at: datetime
    local_path: str | None = None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Repository):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def with_local_path(self, local_path: str) -> "Repository":
        """Return a copy of this repository bound to a working copy."""
        return replace(self, local_path=local_path)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        data["updated_at"] = self.updated_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Repository":
        return cls(
            id=str(data["id"]),
            name=data["name"],
            full_name=data["full_name"],
            owner=data["owner"],
            description=data.get("description"),
            url=data.get("url", ""),
            default_branch=data.get("default_branch") or "main",
            is_private=bool(data.get("is_private", False)),
            language=data.get("language"),
            stargazers_count=int(data.get("stargazers_count", 0)),
            forks_count=int(data.get("forks_count", 0)),
            open_issues_count=int(data.get("open_issues_count", 0)),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
            local_path=data.get("local_path"),
        )
