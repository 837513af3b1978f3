"""
Tests for SessionCoordinator.
"""

import asyncio

import pytest

from ccmanager.clients.assistant import AssistantClient, StreamStatus
from ccmanager.coordinator import SessionCoordinator
from ccmanager.exceptions import CommandFailedError, NoActiveSessionError, NoLocalPathError
from ccmanager.testing import MockAPI, MockGitExecutor, create_mock_repository, message_body, stream_body
from ccmanager.testing.fixtures import FIXED_NOW
from ccmanager.types.auth import Provider
from ccmanager.types.changes import ChangeType
from ccmanager.types.repos import Repository
from ccmanager.types.sessions import AgentSelector, CommandStatus
from ccmanager.types.usage import TimeRange, UsageMetric

MESSAGES_ROUTE = "POST /v1/messages"


class TestSessions:
    def test_start_session_becomes_current(
        self, coordinator: SessionCoordinator, sample_repository: Repository
    ) -> None:
        session = coordinator.start_session(sample_repository)

        assert coordinator.current_session is session
        assert session.is_active
        assert session.repository == sample_repository
        assert coordinator.sessions == [session]

    def test_end_keeps_history(
        self, coordinator: SessionCoordinator, sample_repository: Repository
    ) -> None:
        session = coordinator.start_session(sample_repository)

        ended = coordinator.end_current_session()

        assert ended is session
        assert coordinator.current_session is None
        assert session.is_active is False
        assert session.end_time is not None
        assert coordinator.sessions == [session]

    def test_end_without_session_is_noop(self, coordinator: SessionCoordinator) -> None:
        assert coordinator.end_current_session() is None

    def test_at_most_one_current_session(
        self, coordinator: SessionCoordinator, sample_repository: Repository
    ) -> None:
        first = coordinator.start_session(sample_repository)
        second = coordinator.start_session(sample_repository)

        assert coordinator.current_session is second
        assert coordinator.sessions == [first, second]

    def test_session_repository_is_fixed(
        self, coordinator: SessionCoordinator, sample_repository: Repository, cloned_repository: Repository
    ) -> None:
        session = coordinator.start_session(sample_repository)

        with pytest.raises(AttributeError):
            session.repository = cloned_repository

    def test_select_repository_notifies(
        self, coordinator: SessionCoordinator, sample_repository: Repository
    ) -> None:
        events = []
        coordinator.subscribe(events.append)

        coordinator.select_repository(sample_repository)

        assert coordinator.selected_repository == sample_repository
        assert [e.name for e in events] == ["repository_selected"]
        assert events[0].source == "session"


class TestSubmitCommand:
    @pytest.mark.asyncio
    async def test_without_session_raises_before_network(
        self, mock_api: MockAPI, coordinator: SessionCoordinator
    ) -> None:
        with pytest.raises(NoActiveSessionError):
            await coordinator.submit_command("hello")

        assert mock_api.get_calls() == []

    @pytest.mark.asyncio
    async def test_empty_text_is_noop(
        self, mock_api: MockAPI, coordinator: SessionCoordinator, sample_repository: Repository
    ) -> None:
        session = coordinator.start_session(sample_repository)

        assert await coordinator.submit_command("") == []
        assert session.commands == []
        assert mock_api.get_calls() == []

    @pytest.mark.asyncio
    async def test_completed_command_is_recorded(
        self, mock_api: MockAPI, coordinator: SessionCoordinator, sample_repository: Repository
    ) -> None:
        mock_api.configure(MESSAGES_ROUTE, json=message_body("Done.", input_tokens=70, output_tokens=30))
        session = coordinator.start_session(sample_repository)

        [command] = await coordinator.submit_command("Add type hints")

        assert command.status is CommandStatus.COMPLETED
        assert command.output == "Done."
        assert command.provider == "claude"
        assert session.commands == [command]
        assert coordinator.in_flight == {}

    @pytest.mark.asyncio
    async def test_prompt_carries_repository_context(
        self, mock_api: MockAPI, coordinator: SessionCoordinator, sample_repository: Repository
    ) -> None:
        mock_api.configure(MESSAGES_ROUTE, json=message_body("ok"))
        coordinator.start_session(sample_repository)

        await coordinator.submit_command("Add type hints")

        content = mock_api.get_calls(MESSAGES_ROUTE)[0].kwargs["json"]["messages"][0]["content"]
        assert content == "Repository: demo\nLanguage: Python\n\nCommand: Add type hints"

    @pytest.mark.asyncio
    async def test_failed_command_is_recorded_once(
        self, mock_api: MockAPI, coordinator: SessionCoordinator, sample_repository: Repository
    ) -> None:
        mock_api.configure(MESSAGES_ROUTE, status_code=500, json={"type": "error"})
        session = coordinator.start_session(sample_repository)

        [command] = await coordinator.submit_command("Add type hints")

        assert command.status is CommandStatus.FAILED
        assert command.error == "API error: HTTP 500"
        assert command.output is None
        assert session.commands == [command]

    @pytest.mark.asyncio
    async def test_unconfigured_key_fails_command(
        self, mock_api: MockAPI, coordinator: SessionCoordinator, assistant: AssistantClient, sample_repository: Repository
    ) -> None:
        assistant.disconnect()
        session = coordinator.start_session(sample_repository)

        [command] = await coordinator.submit_command("Add type hints")

        assert command.status is CommandStatus.FAILED
        assert command.error == "Claude API key not configured"
        assert session.commands == [command]
        assert mock_api.get_calls() == []

    @pytest.mark.asyncio
    async def test_command_passes_through_running(
        self, mock_api: MockAPI, coordinator: SessionCoordinator, sample_repository: Repository
    ) -> None:
        mock_api.configure(MESSAGES_ROUTE, json=message_body("ok"))
        session = coordinator.start_session(sample_repository)
        observed = []

        def on_event(event) -> None:
            if event.name == "command_running":
                observed.append(
                    (event.payload.status, event.payload.id in coordinator.in_flight, len(session.commands))
                )

        coordinator.subscribe(on_event)
        await coordinator.submit_command("hi")

        assert observed == [(CommandStatus.RUNNING, True, 0)]

    @pytest.mark.asyncio
    async def test_both_selector_dispatches_to_each_provider(
        self, mock_api: MockAPI, coordinator: SessionCoordinator, sample_repository: Repository
    ) -> None:
        mock_api.configure(MESSAGES_ROUTE, json=message_body("ok"))
        session = coordinator.start_session(sample_repository)

        commands = await coordinator.submit_command("hi", AgentSelector.BOTH)

        assert [(c.provider, c.status) for c in commands] == [
            ("claude", CommandStatus.COMPLETED),
            ("codex", CommandStatus.FAILED),
        ]
        assert commands[1].error == "Codex API key not configured"
        assert len(session.commands) == 2
        assert mock_api.call_count(MESSAGES_ROUTE) == 1

    @pytest.mark.asyncio
    async def test_command_stays_with_session_it_was_submitted_to(
        self, mock_api: MockAPI, coordinator: SessionCoordinator, sample_repository: Repository
    ) -> None:
        mock_api.configure(MESSAGES_ROUTE, json=message_body("ok"))
        first = coordinator.start_session(sample_repository)

        pending = asyncio.create_task(coordinator.submit_command("hi"))
        await asyncio.sleep(0)
        coordinator.end_current_session()
        second = coordinator.start_session(sample_repository)
        await pending

        assert len(first.commands) == 1
        assert second.commands == []

    @pytest.mark.asyncio
    async def test_concurrent_submissions_each_append(
        self, mock_api: MockAPI, coordinator: SessionCoordinator, sample_repository: Repository
    ) -> None:
        mock_api.configure(MESSAGES_ROUTE, json=message_body("ok"))
        session = coordinator.start_session(sample_repository)

        await asyncio.gather(
            coordinator.submit_command("one"),
            coordinator.submit_command("two"),
        )

        assert sorted(c.command for c in session.commands) == ["one", "two"]

    @pytest.mark.asyncio
    async def test_completed_command_records_usage(
        self, mock_api: MockAPI, coordinator: SessionCoordinator, sample_repository: Repository
    ) -> None:
        mock_api.configure(MESSAGES_ROUTE, json=message_body("ok", input_tokens=700, output_tokens=300))
        coordinator.start_session(sample_repository)

        await coordinator.submit_command("hi")

        [sample] = coordinator.ledger.samples()
        assert sample.date == FIXED_NOW
        assert sample.tokens == {"claude": 1000}
        assert sample.api_calls == 1
        assert sample.cost == pytest.approx(0.03)
        assert coordinator.ledger.total(TimeRange.DAY, UsageMetric.TOKENS) == 1000

    @pytest.mark.asyncio
    async def test_malformed_reply_is_recorded_as_failed(
        self, mock_api: MockAPI, coordinator: SessionCoordinator, sample_repository: Repository
    ) -> None:
        body = message_body("ok")
        body["usage"] = "oops"
        mock_api.configure(MESSAGES_ROUTE, json=body)
        session = coordinator.start_session(sample_repository)

        [command] = await coordinator.submit_command("hi")

        assert command.status is CommandStatus.FAILED
        assert command.error.startswith("Invalid response from claude API")
        assert session.commands == [command]
        assert coordinator.in_flight == {}

    @pytest.mark.asyncio
    async def test_unexpected_error_clears_in_flight(
        self,
        monkeypatch: pytest.MonkeyPatch,
        coordinator: SessionCoordinator,
        assistant: AssistantClient,
        sample_repository: Repository,
    ) -> None:
        async def explode(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(assistant, "execute_command", explode)
        session = coordinator.start_session(sample_repository)

        with pytest.raises(RuntimeError):
            await coordinator.submit_command("hi")

        assert coordinator.in_flight == {}
        assert session.commands == []

    @pytest.mark.asyncio
    async def test_failed_command_records_no_usage(
        self, mock_api: MockAPI, coordinator: SessionCoordinator, sample_repository: Repository
    ) -> None:
        mock_api.configure(MESSAGES_ROUTE, status_code=500, json={"type": "error"})
        coordinator.start_session(sample_repository)

        await coordinator.submit_command("hi")

        assert len(coordinator.ledger) == 0


class TestStreamCommand:
    @pytest.mark.asyncio
    async def test_without_session_raises(self, coordinator: SessionCoordinator) -> None:
        with pytest.raises(NoActiveSessionError):
            coordinator.stream_command("hi")

    @pytest.mark.asyncio
    async def test_completed_stream_is_recorded(
        self, mock_api: MockAPI, coordinator: SessionCoordinator, sample_repository: Repository
    ) -> None:
        mock_api.configure(MESSAGES_ROUTE, content=stream_body(["Hel", "lo"]))
        session = coordinator.start_session(sample_repository)

        stream = coordinator.stream_command("greet")
        fragments = [fragment async for fragment in stream]

        assert fragments == ["Hel", "lo"]
        assert stream.status is StreamStatus.COMPLETED
        [command] = session.commands
        assert command.status is CommandStatus.COMPLETED
        assert command.output == "Hello"
        assert coordinator.in_flight == {}
        assert len(coordinator.ledger) == 1

    @pytest.mark.asyncio
    async def test_aborted_empty_stream_is_recorded_as_failed(
        self, mock_api: MockAPI, coordinator: SessionCoordinator, sample_repository: Repository
    ) -> None:
        mock_api.configure(MESSAGES_ROUTE, status_code=401, json={"type": "error"})
        session = coordinator.start_session(sample_repository)

        stream = coordinator.stream_command("greet")
        assert [fragment async for fragment in stream] == []

        [command] = session.commands
        assert command.status is CommandStatus.FAILED
        assert command.error == "API error: HTTP 401"
        assert len(coordinator.ledger) == 0

    @pytest.mark.asyncio
    async def test_stopping_early_records_partial_text(
        self, mock_api: MockAPI, coordinator: SessionCoordinator, sample_repository: Repository
    ) -> None:
        mock_api.configure(MESSAGES_ROUTE, content=stream_body(["one", "two"]))
        session = coordinator.start_session(sample_repository)

        async with coordinator.stream_command("count") as stream:
            async for _ in stream:
                break

        assert stream.status is StreamStatus.ABORTED
        [command] = session.commands
        assert command.output == "one"

    @pytest.mark.asyncio
    async def test_unauthenticated_stream_recorded_as_failed(
        self, coordinator: SessionCoordinator, assistant: AssistantClient, sample_repository: Repository
    ) -> None:
        assistant.disconnect()
        session = coordinator.start_session(sample_repository)

        stream = coordinator.stream_command("greet")

        assert stream.finished
        [command] = session.commands
        assert command.status is CommandStatus.FAILED
        assert command.error == "Claude API key not configured"

    @pytest.mark.asyncio
    async def test_missing_claude_client(self, catalog, ledger, sample_repository: Repository) -> None:
        coordinator = SessionCoordinator(catalog, {}, ledger)
        session = coordinator.start_session(sample_repository)

        stream = coordinator.stream_command("greet")

        assert stream.status is StreamStatus.ABORTED
        assert session.commands[0].status is CommandStatus.FAILED


class TestChanges:
    @pytest.mark.asyncio
    async def test_refresh_replaces_changes(
        self,
        git_executor: MockGitExecutor,
        coordinator: SessionCoordinator,
        cloned_repository: Repository,
    ) -> None:
        session = coordinator.start_session(cloned_repository)
        git_executor.configure_diff("M\tsrc/a.py\nA\tREADME.md\n")
        await coordinator.refresh_changes(cloned_repository)

        git_executor.configure_diff("D\tREADME.md\n")
        changes = await coordinator.refresh_changes(cloned_repository)

        assert [(c.change_type, c.file_path) for c in changes] == [(ChangeType.DELETED, "README.md")]
        assert session.changes == changes
        assert coordinator.last_error is None

    @pytest.mark.asyncio
    async def test_refresh_without_local_path_records_error(
        self, coordinator: SessionCoordinator, sample_repository: Repository
    ) -> None:
        session = coordinator.start_session(sample_repository)

        with pytest.raises(NoLocalPathError):
            await coordinator.refresh_changes(sample_repository)

        assert coordinator.last_error == "Repository has no local path"
        assert session.changes == []

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_previous_changes(
        self,
        git_executor: MockGitExecutor,
        coordinator: SessionCoordinator,
        cloned_repository: Repository,
    ) -> None:
        session = coordinator.start_session(cloned_repository)
        git_executor.configure_diff("M\tsrc/a.py\n")
        await coordinator.refresh_changes(cloned_repository)

        git_executor.configure_diff(returncode=128, stderr="fatal: bad revision")
        with pytest.raises(CommandFailedError):
            await coordinator.refresh_changes(cloned_repository)

        assert [c.file_path for c in session.changes] == ["src/a.py"]
        assert coordinator.last_error == "Git command failed"

    @pytest.mark.asyncio
    async def test_refresh_of_other_repository_leaves_session_changes(
        self,
        tmp_path,
        git_executor: MockGitExecutor,
        coordinator: SessionCoordinator,
        cloned_repository: Repository,
    ) -> None:
        session = coordinator.start_session(cloned_repository)
        git_executor.configure_diff("M\tsrc/a.py\n")
        await coordinator.refresh_changes(cloned_repository)
        other = create_mock_repository(repo_id="42", name="other", local_path=str(tmp_path / "other"))

        git_executor.configure_diff("A\tdocs/index.md\n")
        changes = await coordinator.refresh_changes(other)

        assert [c.file_path for c in changes] == ["docs/index.md"]
        assert [c.file_path for c in session.changes] == ["src/a.py"]

    @pytest.mark.asyncio
    async def test_poll_continues_after_failure(
        self,
        git_executor: MockGitExecutor,
        coordinator: SessionCoordinator,
        cloned_repository: Repository,
    ) -> None:
        coordinator.start_session(cloned_repository)
        git_executor.configure_diff(returncode=128, stderr="fatal: bad revision")

        await coordinator.poll_changes(cloned_repository, interval=0, iterations=3)

        assert git_executor.call_count("diff") == 3
        assert coordinator.last_error == "Git command failed"

    @pytest.mark.asyncio
    async def test_poll_runs_until_cancelled(
        self,
        git_executor: MockGitExecutor,
        coordinator: SessionCoordinator,
        cloned_repository: Repository,
    ) -> None:
        coordinator.start_session(cloned_repository)

        task = asyncio.create_task(coordinator.poll_changes(cloned_repository, interval=0.01))
        await asyncio.sleep(0.1)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert git_executor.call_count("diff") >= 2


def test_assistants_mapping_is_copied(catalog, assistant: AssistantClient) -> None:
    mapping = {Provider.CLAUDE: assistant}
    coordinator = SessionCoordinator(catalog, mapping)
    mapping.clear()

    assert coordinator.assistants == {Provider.CLAUDE: assistant}
