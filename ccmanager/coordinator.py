"""
Session coordinator for CCManager.

Owns the agent sessions, dispatches commands to the configured assistants,
keeps each session's change feed current and records usage.
"""

import asyncio
from collections.abc import Mapping

from ccmanager.clients.assistant import (
    AssistantClient,
    AssistantContext,
    CommandStream,
    StreamStatus,
)
from ccmanager.clients.repos import RepositoryCatalog
from ccmanager.events import Observable
from ccmanager.exceptions import CCManagerError, NoActiveSessionError, NotAuthenticatedError
from ccmanager.logging import get_logger
from ccmanager.types.auth import Provider
from ccmanager.types.changes import FileChange
from ccmanager.types.repos import Repository
from ccmanager.types.sessions import AgentCommand, AgentSelector, AgentSession, CommandStatus
from ccmanager.types.usage import UsageSample
from ccmanager.usage import UsageLedger

logger = get_logger("session")

_SELECTED_PROVIDERS: dict[AgentSelector, tuple[Provider, ...]] = {
    AgentSelector.CLAUDE: (Provider.CLAUDE,),
    AgentSelector.CODEX: (Provider.CODEX,),
    AgentSelector.BOTH: (Provider.CLAUDE, Provider.CODEX),
}


class SessionCoordinator(Observable):
    """
    Coordinates agent sessions against one repository at a time.

    At most one session is current. Starting a session does not end the
    previous one; callers end sessions explicitly. Ended sessions stay in
    ``sessions``.

    Example:
        ```python
        coordinator = SessionCoordinator(catalog, {Provider.CLAUDE: assistant}, ledger)
        coordinator.start_session(repository)
        commands = await coordinator.submit_command("Add type hints to utils.py")
        await coordinator.refresh_changes(repository)
        ```
    """

    event_source = "session"

    def __init__(
        self,
        catalog: RepositoryCatalog,
        assistants: Mapping[Provider, AssistantClient],
        ledger: UsageLedger | None = None,
    ) -> None:
        super().__init__()
        self.catalog = catalog
        self.assistants = dict(assistants)
        self.ledger = ledger if ledger is not None else UsageLedger()

        self.sessions: list[AgentSession] = []
        self.current_session: AgentSession | None = None
        self.selected_repository: Repository | None = None
        self.in_flight: dict[str, AgentCommand] = {}
        self.last_error: str | None = None

    def select_repository(self, repository: Repository | None) -> None:
        self._commit(
            "repository_selected",
            lambda: setattr(self, "selected_repository", repository),
            payload=repository,
        )

    def start_session(self, repository: Repository) -> AgentSession:
        """Open a new session on repository and make it current."""
        session = AgentSession(repository=repository)

        def apply() -> None:
            self.sessions.append(session)
            self.current_session = session

        self._commit("session_started", apply, payload=session)
        logger.info("Started session %s on %s", session.id, repository.full_name)
        return session

    def end_current_session(self) -> AgentSession | None:
        """End the current session, if any, keeping it in history."""
        session = self.current_session
        if session is None:
            return None

        def apply() -> None:
            session.end()
            self.current_session = None

        self._commit("session_ended", apply, payload=session)
        logger.info("Ended session %s", session.id)
        return session

    async def submit_command(
        self,
        text: str,
        agent: AgentSelector = AgentSelector.CLAUDE,
    ) -> list[AgentCommand]:
        """
        Send a command to the selected assistant(s).

        Each selected provider produces exactly one terminal command, Completed
        or Failed, appended to the session current at submission time.

        Returns:
            The appended commands; empty when ``text`` is empty

        Raises:
            NoActiveSessionError: If no session is current
        """
        if not text:
            return []

        session = self.current_session
        if session is None:
            raise NoActiveSessionError()

        context = AssistantContext.from_repository(session.repository)
        providers = _SELECTED_PROVIDERS[AgentSelector(agent)]
        return list(
            await asyncio.gather(
                *(self._dispatch(session, provider, text, context) for provider in providers)
            )
        )

    async def _dispatch(
        self,
        session: AgentSession,
        provider: Provider,
        text: str,
        context: AssistantContext,
    ) -> AgentCommand:
        command = AgentCommand(command=text, provider=provider.value).running()
        self._commit(
            "command_running",
            lambda: self.in_flight.__setitem__(command.id, command),
            payload=command,
        )

        assistant = self.assistants.get(provider)
        finished = command
        try:
            if assistant is None:
                raise NotAuthenticatedError(provider.value)
            reply = await assistant.execute_command(text, context)
        except CCManagerError as e:
            logger.warning("Command %s failed on %s: %s", command.id, provider.value, e.message)
            finished = command.failed(e.message)
        else:
            finished = command.completed(reply.text)
        finally:
            # Unexpected errors and cancellation still leave in_flight clean.
            if finished is command:
                self._commit(
                    "command_abandoned",
                    lambda: self.in_flight.pop(command.id, None),
                    payload=command,
                )

        self._finish_command(session, finished)
        if finished.status is CommandStatus.COMPLETED:
            self._record_usage(assistant, reply.total_tokens)
        return finished

    def stream_command(self, text: str) -> CommandStream:
        """
        Stream a command from the claude assistant.

        Once the stream finishes the joined text is appended to the current
        session as a Completed command; an aborted stream that produced no
        text is appended as Failed.

        Raises:
            NoActiveSessionError: If no session is current
        """
        session = self.current_session
        if session is None:
            raise NoActiveSessionError()

        command = AgentCommand(command=text, provider=Provider.CLAUDE.value).running()
        assistant = self.assistants.get(Provider.CLAUDE)
        if assistant is None:
            reason = NotAuthenticatedError(Provider.CLAUDE.value).message
            self._finish_command(session, command.failed(reason))
            return CommandStream.aborted(reason)

        stream = assistant.stream_command(text, AssistantContext.from_repository(session.repository))
        if stream.finished:
            self._finish_command(session, command.failed(stream.reason or "stream aborted"))
            return stream

        self._commit(
            "command_running",
            lambda: self.in_flight.__setitem__(command.id, command),
            payload=command,
        )
        return _RecordingStream(self, session, command, assistant, stream)

    def _finish_stream(
        self,
        session: AgentSession,
        command: AgentCommand,
        assistant: AssistantClient,
        stream: CommandStream,
    ) -> None:
        if stream.status is StreamStatus.COMPLETED or stream.text:
            self._finish_command(session, command.completed(stream.text))
            tokens = assistant.estimate_tokens(command.command) + assistant.estimate_tokens(stream.text)
            self._record_usage(assistant, tokens)
        else:
            self._finish_command(session, command.failed(stream.reason or "stream aborted"))

    def _finish_command(self, session: AgentSession, command: AgentCommand) -> None:
        def apply() -> None:
            self.in_flight.pop(command.id, None)
            session.commands.append(command)

        self._commit("command_finished", apply, payload=command)

    def _record_usage(self, assistant: AssistantClient, tokens: int) -> None:
        self.ledger.record_sample(
            UsageSample(
                date=self.ledger.now(),
                tokens={assistant.provider: tokens},
                api_calls=1,
                cost=assistant.estimate_cost(tokens, assistant.model),
            )
        )

    async def refresh_changes(self, repository: Repository) -> list[FileChange]:
        """
        Refresh the working copy's diff, storing it on the current session
        when that session is bound to ``repository``.

        Raises:
            NoLocalPathError: If the repository has no working copy
            CommandFailedError: If the diff command fails
        """
        try:
            changes = await self.catalog.fetch_changes(repository)
        except CCManagerError as e:
            self._commit("error", lambda: setattr(self, "last_error", e.message))
            raise

        def apply() -> None:
            session = self.current_session
            if session is not None and session.repository == repository:
                session.changes = changes
            self.last_error = None

        self._commit("changes", apply, payload=changes)
        return changes

    async def poll_changes(
        self,
        repository: Repository,
        interval: float,
        iterations: int | None = None,
    ) -> None:
        """
        Refresh changes every ``interval`` seconds.

        Failures are recorded in ``last_error`` and polling continues. Runs
        until cancelled, or for ``iterations`` rounds when given.
        """
        count = 0
        while iterations is None or count < iterations:
            try:
                await self.refresh_changes(repository)
            except CCManagerError as e:
                logger.warning("Change poll for %s failed: %s", repository.full_name, e.message)
            count += 1
            if iterations is None or count < iterations:
                await asyncio.sleep(interval)


class _RecordingStream(CommandStream):
    """CommandStream that reports its outcome to the coordinator when it ends."""

    def __init__(
        self,
        coordinator: SessionCoordinator,
        session: AgentSession,
        command: AgentCommand,
        assistant: AssistantClient,
        inner: CommandStream,
    ) -> None:
        # State lives on the wrapped stream, so the base initializer is skipped
        self._coordinator = coordinator
        self._session = session
        self._command = command
        self._assistant = assistant
        self._inner = inner
        self._recorded = False

    @property
    def status(self) -> StreamStatus:
        return self._inner.status

    @property
    def reason(self) -> str | None:
        return self._inner.reason

    @property
    def text(self) -> str:
        return self._inner.text

    async def __anext__(self) -> str:
        try:
            return await self._inner.__anext__()
        except StopAsyncIteration:
            self._record()
            raise

    async def aclose(self) -> None:
        await self._inner.aclose()
        self._record()

    def _record(self) -> None:
        if self._recorded:
            return
        self._recorded = True
        self._coordinator._finish_stream(self._session, self._command, self._assistant, self._inner)
