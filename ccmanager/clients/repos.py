"""Repository catalog backed by the hosting provider API."""

from datetime import datetime, timezone
from typing import Any

import httpx

from ccmanager.events import Observable
from ccmanager.exceptions import (
    ApiError,
    CCManagerError,
    InvalidResponseError,
)
from ccmanager.git import WorkingCopyBridge
from ccmanager.logging import get_logger
from ccmanager.transport import HTTPTransport
from ccmanager.types.changes import FileChange
from ccmanager.types.repos import Repository

logger = get_logger("catalog")

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_GIT_HOST = "github.com"
PAGE_SIZE = 100


def _parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 timestamp, falling back to now when unreadable."""
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            pass
    return datetime.now(timezone.utc)


def _parse_repository(data: dict[str, Any]) -> Repository:
    """Map a hosting API repository record to a Repository."""
    return Repository(
        id=str(data["id"]),
        name=data["name"],
        full_name=data["full_name"],
        owner=data["owner"]["login"],
        description=data.get("description"),
        url=data["html_url"],
        default_branch=data.get("default_branch") or "main",
        is_private=bool(data["private"]),
        language=data.get("language"),
        stargazers_count=int(data.get("stargazers_count", 0)),
        forks_count=int(data.get("forks_count", 0)),
        open_issues_count=int(data.get("open_issues_count", 0)),
        created_at=_parse_timestamp(data.get("created_at")),
        updated_at=_parse_timestamp(data.get("updated_at")),
    )


class RepositoryCatalog(Observable):
    """
    Repositories visible to the authenticated hosting account.

    Listing is fail-soft: a failed fetch records ``error`` and keeps the
    previous ``repositories``. Clone and pull are user-initiated and raise.

    Example:
        ```python
        catalog = RepositoryCatalog()
        await catalog.authenticate(token)
        repo = await catalog.clone_repository(catalog.repositories[0], "~/Developer/demo")
        changes = await catalog.fetch_changes(repo)
        ```
    """

    event_source = "catalog"

    def __init__(
        self,
        bridge: WorkingCopyBridge | None = None,
        api_url: str = DEFAULT_API_URL,
        git_host: str = DEFAULT_GIT_HOST,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the catalog.

        Args:
            bridge: Working-copy bridge for clone/pull/diff
            api_url: Hosting API base URL
            git_host: Host used to derive HTTPS clone URLs
            transport: Optional httpx transport (tests inject httpx.MockTransport)
        """
        super().__init__()
        self.bridge = bridge or WorkingCopyBridge()
        self.git_host = git_host
        self._http = HTTPTransport(
            api_url,
            headers={"Accept": "application/vnd.github.v3+json"},
            transport=transport,
        )
        self._token: str | None = None

        self.repositories: list[Repository] = []
        self.is_authenticated = False
        self.is_loading = False
        self.error: str | None = None

    async def close(self) -> None:
        await self._http.close()

    async def authenticate(self, token: str) -> None:
        """Store the token and immediately fetch the repository list."""

        def apply() -> None:
            self._token = token
            self.is_authenticated = True

        self._commit("authenticated", apply)
        await self.fetch_repositories()

    def logout(self) -> None:
        def apply() -> None:
            self._token = None
            self.is_authenticated = False
            self.repositories = []
            self.error = None

        self._commit("logged_out", apply)

    async def fetch_repositories(self) -> None:
        """
        Replace the repository list with the account's repositories.

        Fetches a single page of ``PAGE_SIZE``. On any failure ``error`` is
        set and the previous list is kept.
        """
        if self._token is None:
            self._commit("error", lambda: setattr(self, "error", "Not authenticated"))
            return

        def start() -> None:
            self.is_loading = True
            self.error = None

        self._commit("loading", start)

        try:
            repositories = await self._list_repositories(self._token)
        except CCManagerError as e:
            logger.warning("Repository fetch failed: %s", e.message)
            self._commit("error", lambda: self._finish_loading(error=e.message))
            return

        def apply() -> None:
            self.repositories = self._keep_local_paths(repositories)
            self._finish_loading()

        self._commit("repositories", apply, payload=len(repositories))

    async def _list_repositories(self, token: str) -> list[Repository]:
        response = await self._http.request(
            "GET",
            "/user/repos",
            params={"per_page": PAGE_SIZE},
            headers={"Authorization": f"Bearer {token}"},
        )
        if response.status_code != 200:
            raise ApiError(response.status_code)
        try:
            records = response.json()
            if not isinstance(records, list):
                raise TypeError("expected a list of repositories")
            return [_parse_repository(record) for record in records]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise InvalidResponseError(f"Invalid repository list: {e}") from e

    def _keep_local_paths(self, fetched: list[Repository]) -> list[Repository]:
        """Carry working-copy bindings over to freshly fetched records."""
        known = {r.id: r.local_path for r in self.repositories if r.local_path}
        return [
            r.with_local_path(known[r.id]) if r.id in known else r
            for r in fetched
        ]

    def _finish_loading(self, error: str | None = None) -> None:
        self.is_loading = False
        self.error = error

    def clone_url(self, repository: Repository) -> str:
        return f"https://{self.git_host}/{repository.full_name}.git"

    async def clone_repository(self, repository: Repository, local_path: str) -> Repository:
        """
        Clone the repository and bind it to the new working copy.

        Returns:
            The repository with ``local_path`` set; the catalog entry is
            replaced by it

        Raises:
            CloneFailedError: If git exits non-zero
        """
        dest = await self.bridge.clone(self.clone_url(repository), local_path)
        cloned = repository.with_local_path(dest)
        self._commit("repository_cloned", lambda: self._upsert(cloned), payload=cloned)
        return cloned

    async def fetch_changes(self, repository: Repository) -> list[FileChange]:
        """
        Raises:
            NoLocalPathError: If the repository has no working copy
        """
        return await self.bridge.fetch_changes(repository)

    async def pull_latest(self, repository: Repository) -> None:
        """
        Raises:
            NoLocalPathError: If the repository has no working copy
            CommandFailedError: If the fast-forward pull fails
        """
        await self.bridge.pull(repository)

    def get(self, repo_id: str) -> Repository | None:
        for repository in self.repositories:
            if repository.id == repo_id:
                return repository
        return None

    def add_repository(self, repository: Repository) -> None:
        self._commit("repository_added", lambda: self._upsert(repository), payload=repository)

    def remove_repository(self, repo_id: str) -> None:
        def apply() -> None:
            self.repositories = [r for r in self.repositories if r.id != repo_id]

        self._commit("repository_removed", apply, payload=repo_id)

    def _upsert(self, repository: Repository) -> None:
        updated = list(self.repositories)
        for index, existing in enumerate(updated):
            if existing.id == repository.id:
                updated[index] = repository
                break
        else:
            updated.append(repository)
        self.repositories = updated

