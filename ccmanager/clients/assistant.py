"""Assistant client for the messages API."""

import json
from collections.abc import AsyncGenerator
from dataclasses import dataclass
from enum import Enum
from typing import Any, Final

import httpx

from ccmanager.events import Observable
from ccmanager.exceptions import (
    ApiError,
    CCManagerError,
    InvalidResponseError,
    NotAuthenticatedError,
)
from ccmanager.logging import get_logger
from ccmanager.transport import HTTPTransport
from ccmanager.types.repos import Repository
from ccmanager.types.usage import AssistantModel

logger = get_logger("assistant")

DEFAULT_BASE_URL = "https://api.anthropic.com"
MESSAGES_PATH = "/v1/messages"
API_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 4096
SYSTEM_PROMPT = (
    "You are a code assistant helping with repository management and code "
    "generation. Provide clear, concise responses with code examples when "
    "appropriate."
)

_DATA_PREFIX = "data: "
_DONE_MARKER = "[DONE]"

# Returned by parse_stream_line for the end-of-stream marker
STREAM_DONE: Final = object()


@dataclass(frozen=True)
class AssistantContext:
    """Repository context prefixed to a command."""

    repository_name: str | None = None
    language: str | None = None

    @classmethod
    def from_repository(cls, repository: Repository) -> "AssistantContext":
        return cls(repository_name=repository.name, language=repository.language)

    def prefix(self) -> str:
        return (
            f"Repository: {self.repository_name or 'Unknown'}\n"
            f"Language: {self.language or 'Unknown'}\n\n"
        )


@dataclass(frozen=True)
class AssistantReply:
    """Outcome of a whole-response command."""

    command: str
    text: str | None
    model: str
    input_tokens: int
    output_tokens: int

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class StreamStatus(str, Enum):
    PENDING = "pending"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ABORTED = "aborted"


def build_prompt(command: str, context: AssistantContext | None) -> str:
    prefix = context.prefix() if context is not None else ""
    return f"{prefix}Command: {command}"


def parse_stream_line(line: str) -> str | object | None:
    """
    Interpret one server-sent-event line.

    Returns:
        The ``delta.text`` fragment, ``STREAM_DONE`` for the terminal marker,
        or None for lines carrying no text (other fields, malformed JSON)
    """
    if not line.startswith(_DATA_PREFIX):
        return None

    payload = line[len(_DATA_PREFIX):].strip()
    if payload == _DONE_MARKER:
        return STREAM_DONE

    try:
        event = json.loads(payload)
    except ValueError:
        return None

    if not isinstance(event, dict):
        return None
    delta = event.get("delta")
    if not isinstance(delta, dict):
        return None
    text = delta.get("text")
    return text if isinstance(text, str) else None


class CommandStream:
    """
    Lazily delivered text fragments of a streamed command.

    The stream is finite and single-use. Once iteration ends, ``status`` is
    COMPLETED when the end marker arrived and ABORTED otherwise, with
    ``reason`` describing why. Use it as an async context manager, or call
    ``aclose()``, to release the connection when stopping early.

    Example:
        ```python
        async with client.stream_command("explain main.py") as stream:
            async for fragment in stream:
                print(fragment, end="")
        print(stream.status, stream.reason)
        ```
    """

    def __init__(self) -> None:
        self.status = StreamStatus.PENDING
        self.reason: str | None = None
        self._fragments: list[str] = []
        self._source: AsyncGenerator[str, None] | None = None

    @classmethod
    def aborted(cls, reason: str) -> "CommandStream":
        stream = cls()
        stream._finish(StreamStatus.ABORTED, reason)
        return stream

    @property
    def text(self) -> str:
        """All fragments received so far, joined."""
        return "".join(self._fragments)

    @property
    def finished(self) -> bool:
        return self.status in (StreamStatus.COMPLETED, StreamStatus.ABORTED)

    def __aiter__(self) -> "CommandStream":
        return self

    async def __anext__(self) -> str:
        if self._source is None:
            raise StopAsyncIteration
        fragment = await self._source.__anext__()
        self._fragments.append(fragment)
        return fragment

    async def aclose(self) -> None:
        if not self.finished:
            self._finish(StreamStatus.ABORTED, "closed by consumer")
        if self._source is not None:
            source, self._source = self._source, None
            await source.aclose()

    async def __aenter__(self) -> "CommandStream":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    def _bind(self, source: AsyncGenerator[str, None]) -> None:
        self._source = source

    def _start(self) -> None:
        self.status = StreamStatus.STREAMING

    def _finish(self, status: StreamStatus, reason: str | None = None) -> None:
        if self.finished:
            return
        self.status = status
        self.reason = reason


class AssistantClient(Observable):
    """
    Client for a remote assistant speaking the messages protocol.

    Example:
        ```python
        assistant = AssistantClient()
        assistant.connect(api_key)
        reply = await assistant.execute_command(
            "Add a README", AssistantContext("demo", "Python")
        )
        print(reply.text)
        ```
    """

    event_source = "assistant"

    def __init__(
        self,
        provider: str = "claude",
        base_url: str = DEFAULT_BASE_URL,
        model: AssistantModel = AssistantModel.OPUS,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the assistant client.

        Args:
            provider: Provider name used to tag usage and errors
            base_url: API base URL (default: https://api.anthropic.com)
            model: Model tier used for requests and cost estimates
            max_tokens: Response token cap per request
            transport: Optional httpx transport (tests inject httpx.MockTransport)
        """
        super().__init__()
        self.provider = provider
        self.model = model
        self.max_tokens = max_tokens
        self._http = HTTPTransport(
            base_url,
            headers={"Content-Type": "application/json", "anthropic-version": API_VERSION},
            transport=transport,
        )
        self._api_key: str | None = None

        self.is_connected = False
        self.is_processing = False
        self.current_response: str | None = None
        self.last_error: str | None = None

    async def close(self) -> None:
        await self._http.close()

    def connect(self, api_key: str) -> None:
        """Store the API key. No network call is made."""

        def apply() -> None:
            self._api_key = api_key
            self.is_connected = True

        self._commit("connected", apply)

    def disconnect(self) -> None:
        def apply() -> None:
            self._api_key = None
            self.is_connected = False

        self._commit("disconnected", apply)

    def build_request(
        self,
        command: str,
        context: AssistantContext | None = None,
        stream: bool = False,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": self.model.model_id,
            "max_tokens": self.max_tokens,
            "messages": [{"role": "user", "content": build_prompt(command, context)}],
            "system": SYSTEM_PROMPT,
        }
        if stream:
            body["stream"] = True
        return body

    async def execute_command(
        self,
        command: str,
        context: AssistantContext | None = None,
    ) -> AssistantReply:
        """
        Send a command and wait for the whole response.

        Returns:
            AssistantReply with the first content block's text

        Raises:
            NotAuthenticatedError: If no API key is set
            ApiError: On any non-200 status
            InvalidResponseError: If the body cannot be decoded
            TransportError: If the connection fails
        """
        if self._api_key is None:
            raise NotAuthenticatedError(self.provider)

        self._commit("processing", lambda: setattr(self, "is_processing", True))
        try:
            response = await self._http.request(
                "POST",
                MESSAGES_PATH,
                json=self.build_request(command, context),
                headers={"x-api-key": self._api_key},
            )
            if response.status_code != 200:
                raise ApiError(response.status_code)
            reply = self._decode_reply(command, context, response)
        except CCManagerError as e:
            self._commit("error", lambda: setattr(self, "last_error", e.message))
            raise
        finally:
            self._commit("idle", lambda: setattr(self, "is_processing", False))

        def apply() -> None:
            self.current_response = reply.text
            self.last_error = None

        self._commit("response", apply, payload=reply)
        return reply

    def _decode_reply(
        self,
        command: str,
        context: AssistantContext | None,
        response: httpx.Response,
    ) -> AssistantReply:
        try:
            data = response.json()
            content = data["content"]
            text = content[0]["text"] if content else None
            if text is not None and not isinstance(text, str):
                raise TypeError("content text is not a string")
            usage = data.get("usage") or {}
            if not isinstance(usage, dict):
                raise TypeError("usage is not an object")
            model = data.get("model", self.model.model_id)
            input_tokens = usage.get("input_tokens")
            output_tokens = usage.get("output_tokens")
        except (KeyError, IndexError, TypeError, ValueError, AttributeError) as e:
            raise InvalidResponseError(f"Invalid response from {self.provider} API: {e}") from e

        if not isinstance(input_tokens, int) or not isinstance(output_tokens, int):
            input_tokens = self.estimate_tokens(build_prompt(command, context))
            output_tokens = self.estimate_tokens(text or "")

        return AssistantReply(
            command=command,
            text=text,
            model=model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )

    def stream_command(
        self,
        command: str,
        context: AssistantContext | None = None,
    ) -> CommandStream:
        """
        Stream a command's response as text fragments.

        Never raises: a missing key, a non-200 status or a transport error
        ends the stream early with status ABORTED and a reason.
        """
        if self._api_key is None:
            return CommandStream.aborted(NotAuthenticatedError(self.provider).message)

        stream = CommandStream()
        stream._bind(
            self._read_stream(stream, self.build_request(command, context, stream=True), self._api_key)
        )
        return stream

    async def _read_stream(
        self,
        stream: CommandStream,
        body: dict[str, Any],
        api_key: str,
    ) -> AsyncGenerator[str, None]:
        stream._start()
        try:
            async with self._http.stream(
                "POST", MESSAGES_PATH, json=body, headers={"x-api-key": api_key}
            ) as response:
                if response.status_code != 200:
                    stream._finish(StreamStatus.ABORTED, ApiError(response.status_code).message)
                    return
                async for line in response.aiter_lines():
                    parsed = parse_stream_line(line)
                    if parsed is STREAM_DONE:
                        stream._finish(StreamStatus.COMPLETED)
                        return
                    if isinstance(parsed, str):
                        yield parsed
            stream._finish(StreamStatus.ABORTED, "connection closed before end of stream")
        except CCManagerError as e:
            stream._finish(StreamStatus.ABORTED, e.message)
        finally:
            if stream.status is StreamStatus.ABORTED:
                logger.warning("Stream from %s aborted: %s", self.provider, stream.reason)

    @staticmethod
    def estimate_tokens(text: str) -> int:
        """Approximate token count: one token per four characters."""
        return len(text) // 4

    def estimate_cost(self, tokens: int, model: AssistantModel | str | None = None) -> float:
        """
        Linear cost estimate in USD.

        Args:
            tokens: Token count
            model: Model tier or its label; defaults to opus
        """
        if model is None:
            model = AssistantModel.OPUS
        elif isinstance(model, str):
            model = AssistantModel.from_label(model)
        return tokens * model.rate
