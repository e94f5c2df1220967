from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import openai
import pytest

from observer.agents.orchestrator import Orchestrator
from observer.config import Settings
from observer.context.context import Context, WorkingCopy
from observer.context.items import ImagePart, Message, ReasoningNote, ToolCall, ToolResult
from observer.context.store import ContextStore
from observer.errors import ModelsExhausted, NetworkError, ProtocolError, ProviderRequestError
from observer.models.clients.responses_client import (
  ResponsesClient,
  parse_arguments,
  to_input_items,
  to_tool_choice,
)
from observer.models.events import StatusUpdate, Terminal, TerminalStatus, TextDelta, ToolCallRequested, ToolChoice
from observer.models.model import CATALOG
from observer.tools.builtin import builtin_tools
from observer.tools.protocol import ToolContext
from observer.tools.registry import ToolRegistry

URL = "https://api.openai.com/v1/responses"


class EventStream:
  def __init__(self, events, error=None):
    self.events = list(events)
    self.error = error

  def __aiter__(self):
    return self._iterate()

  async def _iterate(self):
    for event in self.events:
      yield event
    if self.error is not None:
      raise self.error


def event(event_type, **fields):
  return SimpleNamespace(type=event_type, **fields)


def message_item(*texts):
  return SimpleNamespace(type="message", content=[SimpleNamespace(type="output_text", text=t) for t in texts])


def function_call_item(call_id, name, arguments):
  return SimpleNamespace(type="function_call", call_id=call_id, name=name, arguments=arguments)


def mock_client(stream=None, error=None):
  create = AsyncMock(return_value=stream, side_effect=error)
  return SimpleNamespace(responses=SimpleNamespace(create=create))


def working_copy(*items):
  working = WorkingCopy(Context(), [Message.system("rules")])
  working.extend(items or [Message.user("hi")])
  return working


def status_error(status_code, message="bad"):
  response = httpx.Response(status_code, request=httpx.Request("POST", URL))
  return openai.APIStatusError(message, response=response, body=None)


async def collect(client, working=None, tools=(), tool_choice=None, on_delta=None):
  events = []
  async for e in client.run(working or working_copy(), list(tools), tool_choice or ToolChoice.auto(), on_delta):
    events.append(e)
  return events


class TestInputItems:
  def test_messages_calls_and_results(self):
    items = [
      Message.system("rules"),
      Message.user("what time is it?"),
      ReasoningNote("considering"),
      ToolCall("c1", "get_time", {"country_code": "JP"}),
      ToolResult("c1", "noon"),
      Message.assistant("noon"),
    ]

    assert to_input_items(items) == [
      {"type": "message", "role": "system", "content": [{"type": "input_text", "text": "rules"}]},
      {"type": "message", "role": "user", "content": [{"type": "input_text", "text": "what time is it?"}]},
      {"type": "function_call", "call_id": "c1", "name": "get_time", "arguments": '{"country_code": "JP"}'},
      {"type": "function_call_output", "call_id": "c1", "output": "noon"},
      {"type": "message", "role": "assistant", "content": "noon"},
    ]

  def test_images_for_vision_models(self):
    message = Message.user("look", (ImagePart("https://cdn/cat.png"),))

    content = to_input_items([message])[0]["content"]

    assert content[1] == {"type": "input_image", "image_url": "https://cdn/cat.png", "detail": "low"}

  def test_images_become_placeholders_without_vision(self):
    message = Message.user("look", (ImagePart("https://cdn/cat.png"),))

    content = to_input_items([message], supports_vision=False)[0]["content"]

    assert content == [{"type": "input_text", "text": "look\n[image] https://cdn/cat.png"}]

  def test_tool_choice(self):
    assert to_tool_choice(ToolChoice.auto()) == "auto"
    assert to_tool_choice(ToolChoice.disable()) == "none"
    assert to_tool_choice(ToolChoice.forced("get_time")) == {"type": "function", "name": "get_time"}

  def test_parse_arguments(self):
    assert parse_arguments("") == {}
    assert parse_arguments('{"a": 1}') == {"a": 1}
    assert parse_arguments("{oops") == "{oops"


class TestBuildRequest:
  def test_request_shape(self):
    client = ResponsesClient(CATALOG["gpt-5-mini"], Settings(max_output_tokens=123), client=mock_client())

    request = client.build_request(working_copy(), builtin_tools(), ToolChoice.auto())

    assert request["model"] == "gpt-5-mini"
    assert request["max_output_tokens"] == 123
    assert request["stream"] is True
    assert request["store"] is False
    assert request["tool_choice"] == "auto"
    assert request["reasoning"] == {"effort": "low"}
    assert [tool["name"] for tool in request["tools"]] == ["get_time", "text_length"]
    assert "$explain" in request["tools"][0]["parameters"]["properties"]

  def test_no_tools_means_no_tool_fields(self):
    client = ResponsesClient(CATALOG["gpt-5-mini"], Settings(), client=mock_client())

    request = client.build_request(working_copy(), [], ToolChoice.disable())

    assert "tools" not in request
    assert "tool_choice" not in request


class TestRun:
  @pytest.mark.asyncio
  async def test_text_response(self):
    deltas = []

    async def on_delta(text):
      deltas.append(text)

    stream = EventStream(
      [
        event("response.created"),
        event("response.in_progress"),
        event("response.output_text.delta", delta="hel"),
        event("response.output_text.delta", delta="lo"),
        event("response.output_item.done", item=message_item("hello")),
        event("response.completed"),
      ]
    )
    client = ResponsesClient(CATALOG["gpt-5-mini"], Settings(), client=mock_client(stream))

    events = await collect(client, on_delta=on_delta)

    assert events == [StatusUpdate("Thinking..."), TextDelta("hello"), Terminal(TerminalStatus.OK)]
    assert deltas == ["hel", "lo"]

  @pytest.mark.asyncio
  async def test_function_call(self):
    stream = EventStream(
      [
        event("response.output_item.done", item=function_call_item("c1", "get_time", '{"country_code": "JP"}')),
        event("response.completed"),
      ]
    )
    client = ResponsesClient(CATALOG["gpt-5-mini"], Settings(), client=mock_client(stream))

    events = await collect(client)

    assert events[0] == ToolCallRequested("c1", "get_time", {"country_code": "JP"})

  @pytest.mark.asyncio
  async def test_malformed_arguments_are_passed_through(self):
    stream = EventStream(
      [event("response.output_item.done", item=function_call_item("c1", "get_time", "{nope")), event("response.completed")]
    )
    client = ResponsesClient(CATALOG["gpt-5-mini"], Settings(), client=mock_client(stream))

    events = await collect(client)

    assert events[0] == ToolCallRequested("c1", "get_time", "{nope")

  @pytest.mark.asyncio
  async def test_reasoning_summary_becomes_status_with_trace(self):
    summary = [SimpleNamespace(text="Checking the clock\nthen answering")]
    stream = EventStream(
      [event("response.output_item.done", item=SimpleNamespace(type="reasoning", summary=summary)), event("response.completed")]
    )
    client = ResponsesClient(CATALOG["gpt-5-mini"], Settings(), client=mock_client(stream))

    events = await collect(client)

    assert events[0] == StatusUpdate("Checking the clock", trace="Checking the clock\nthen answering")

  @pytest.mark.asyncio
  async def test_failed_response_is_a_failed_terminal(self):
    response = SimpleNamespace(error=SimpleNamespace(message="model overloaded"))
    client = ResponsesClient(
      CATALOG["gpt-5-mini"], Settings(), client=mock_client(EventStream([event("response.failed", response=response)]))
    )

    events = await collect(client)

    assert events == [Terminal(TerminalStatus.FAILED, "model overloaded")]

  @pytest.mark.asyncio
  async def test_error_event_is_a_failed_terminal(self):
    client = ResponsesClient(
      CATALOG["gpt-5-mini"], Settings(), client=mock_client(EventStream([event("error", message="rate limit reached")]))
    )

    events = await collect(client)

    assert events == [Terminal(TerminalStatus.FAILED, "rate limit reached")]

  @pytest.mark.asyncio
  async def test_lifecycle_events_are_status_updates(self):
    stream = EventStream([event("response.queued"), event("response.in_progress"), event("response.completed")])
    client = ResponsesClient(CATALOG["gpt-5-mini"], Settings(), client=mock_client(stream))

    events = await collect(client)

    assert events == [StatusUpdate("Queued..."), StatusUpdate("Thinking..."), Terminal(TerminalStatus.OK)]

  @pytest.mark.asyncio
  async def test_error_payload_in_stream_is_a_protocol_error(self):
    error = openai.APIError("server_error in stream", httpx.Request("POST", URL), body=None)
    stream = EventStream([event("response.in_progress")], error=error)
    client = ResponsesClient(CATALOG["gpt-5-mini"], Settings(), client=mock_client(stream))

    with pytest.raises(ProtocolError) as exc_info:
      await collect(client)

    assert "server_error in stream" in exc_info.value.reason
    assert exc_info.value.model == "gpt-5-mini"

  @pytest.mark.asyncio
  async def test_generic_api_error_on_request_is_a_protocol_error(self):
    error = openai.APIError("unexpected response", httpx.Request("POST", URL), body=None)
    client = ResponsesClient(CATALOG["gpt-5-mini"], Settings(), client=mock_client(error=error))

    with pytest.raises(ProtocolError) as exc_info:
      await collect(client)

    assert not isinstance(exc_info.value, ProviderRequestError)

  @pytest.mark.asyncio
  async def test_incomplete_response_is_an_incomplete_terminal(self):
    response = SimpleNamespace(incomplete_details=SimpleNamespace(reason="max_output_tokens"))
    client = ResponsesClient(
      CATALOG["gpt-5-mini"], Settings(), client=mock_client(EventStream([event("response.incomplete", response=response)]))
    )

    events = await collect(client)

    assert events == [Terminal(TerminalStatus.INCOMPLETE, "incomplete response: max_output_tokens")]

  @pytest.mark.asyncio
  async def test_stream_without_terminal_is_a_protocol_error(self):
    client = ResponsesClient(
      CATALOG["gpt-5-mini"], Settings(), client=mock_client(EventStream([event("response.in_progress")]))
    )

    with pytest.raises(ProtocolError):
      await collect(client)

  @pytest.mark.asyncio
  async def test_function_call_without_name_is_a_protocol_error(self):
    stream = EventStream([event("response.output_item.done", item=function_call_item("c1", "", "{}"))])
    client = ResponsesClient(CATALOG["gpt-5-mini"], Settings(), client=mock_client(stream))

    with pytest.raises(ProtocolError):
      await collect(client)

  @pytest.mark.asyncio
  async def test_rejected_request(self):
    client = ResponsesClient(CATALOG["gpt-5-mini"], Settings(), client=mock_client(error=status_error(400)))

    with pytest.raises(ProviderRequestError) as exc_info:
      await collect(client)

    assert exc_info.value.status_code == 400
    assert exc_info.value.model == "gpt-5-mini"

  @pytest.mark.asyncio
  async def test_server_error_is_a_network_error(self):
    client = ResponsesClient(CATALOG["gpt-5-mini"], Settings(), client=mock_client(error=status_error(503)))

    with pytest.raises(NetworkError):
      await collect(client)

  @pytest.mark.asyncio
  async def test_connection_error(self):
    error = openai.APIConnectionError(request=httpx.Request("POST", URL))
    client = ResponsesClient(CATALOG["gpt-5-mini"], Settings(), client=mock_client(error=error))

    with pytest.raises(NetworkError):
      await collect(client)

  @pytest.mark.asyncio
  async def test_interrupted_stream_is_a_network_error(self):
    stream = EventStream([event("response.in_progress")], error=openai.APIConnectionError(request=httpx.Request("POST", URL)))
    client = ResponsesClient(CATALOG["gpt-5-mini"], Settings(), client=mock_client(stream))

    with pytest.raises(NetworkError):
      await collect(client)

  @pytest.mark.asyncio
  async def test_request_reflects_working_copy(self):
    mock = mock_client(EventStream([event("response.completed")]))
    client = ResponsesClient(CATALOG["gpt-5.1-codex-mini"], Settings(), client=mock)
    working = working_copy(Message.user("see", (ImagePart("https://cdn/a.png"),)))

    await collect(client, working=working)

    sent = mock.responses.create.call_args.kwargs
    assert sent["input"][0]["role"] == "system"
    assert sent["input"][1]["content"] == [{"type": "input_text", "text": "see\n[image] https://cdn/a.png"}]


class AnswerAdapter:
  def __init__(self, candidate, answer):
    self.candidate = candidate
    self.answer = answer

  async def run(self, working, tools, tool_choice, on_delta=None):
    yield TextDelta(self.answer)
    yield Terminal()


def orchestrator_with(stream_client):
  def factory(candidate, settings):
    if candidate.name == "gpt-5-mini":
      return ResponsesClient(candidate, settings, client=stream_client)
    return AnswerAdapter(candidate, "fine")

  return Orchestrator(ContextStore(), ToolRegistry(), Settings(), factory)


async def run_turn(orchestrator, names, auto):
  return await orchestrator.run_turn(
    "channel",
    Message.user("hi"),
    [CATALOG[name] for name in names],
    "rules",
    ToolContext("channel", "user"),
    auto=auto,
  )


class TestInTurn:
  @pytest.mark.asyncio
  async def test_stream_error_payload_falls_back_in_auto_mode(self):
    error = openai.APIError("server_error in stream", httpx.Request("POST", URL), body=None)
    orchestrator = orchestrator_with(mock_client(EventStream([event("response.in_progress")], error=error)))

    result = await run_turn(orchestrator, ["gpt-5-mini", "gpt-5-nano"], auto=True)

    assert result.model == "gpt-5-nano"
    assert result.text == "fine"
    assert result.attempts[0].model == "gpt-5-mini"
    assert not result.attempts[0].ok
    assert "server_error in stream" in result.attempts[0].reason

  @pytest.mark.asyncio
  async def test_error_event_is_a_failed_attempt(self):
    orchestrator = orchestrator_with(mock_client(EventStream([event("error", message="rate limit reached")])))

    with pytest.raises(ModelsExhausted) as exc_info:
      await run_turn(orchestrator, ["gpt-5-mini"], auto=False)

    assert exc_info.value.tried == ["gpt-5-mini"]
    assert exc_info.value.reason == "rate limit reached"
    assert exc_info.value.diagnostic() == "Err: all models failed (tried: gpt-5-mini): rate limit reached"
