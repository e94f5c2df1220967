"""
Streaming-family adapter for the OpenAI Responses API.

The request carries the whole working copy as role-tagged input items. The
response is an event stream:

- ``response.queued`` / ``response.in_progress``: lifecycle, shown as status
- ``response.output_text.delta``: partial text, forwarded to the delta callback only
- ``response.output_item.done``: one finished output item, a message, a
  function call or a reasoning trace
- ``response.completed``: normal end
- ``response.failed`` / ``response.incomplete`` / ``error``: abnormal end

Reasoning traces are surfaced as status text and never replayed: the request
is built without ``ReasoningNote`` items.
"""

import json

from typing import AsyncIterator, Optional, Sequence

import openai
from openai import AsyncOpenAI

from ...config import Settings
from ...context.context import WorkingCopy
from ...context.items import ImagePart, Message, ReasoningNote, Role, ToolCall, ToolResult
from ...errors import NetworkError, ProtocolError, ProviderRequestError
from ...logs import get_logger, InfoContext, DebugContext
from ...tools.protocol import InvokableTool
from ...tools.registry import with_explain
from ..events import (
  NormalizedEvent,
  StatusUpdate,
  Terminal,
  TerminalStatus,
  TextDelta,
  ToolCallRequested,
  ToolChoice,
  ToolChoiceMode,
)
from ..model import ModelCandidate
from .protocol import DeltaCallback, visible_content
from .shared_clients import get_shared_openai_client


def to_input_items(items, supports_vision: bool = True) -> list[dict]:
  """
  Translate conversation items into Responses API input items.

  System instructions become ordinary role-tagged messages.

  :param items: Conversation items, oldest first
  :param supports_vision: Whether image parts are sent as images
  :return: List of input item dicts
  """
  result = []
  for item in items:
    match item:
      case Message(role=Role.ASSISTANT):
        result.append({"type": "message", "role": "assistant", "content": item.text_with_image_placeholders()})
      case Message():
        content = []
        for part in visible_content(item, supports_vision):
          if isinstance(part, ImagePart):
            content.append({"type": "input_image", "image_url": part.url, "detail": part.detail.value})
          else:
            content.append({"type": "input_text", "text": part.text})
        result.append({"type": "message", "role": item.role.value, "content": content})
      case ToolCall():
        result.append(
          {
            "type": "function_call",
            "call_id": item.call_id,
            "name": item.tool_name,
            "arguments": item.arguments_json(),
          }
        )
      case ToolResult():
        result.append({"type": "function_call_output", "call_id": item.call_id, "output": item.output})
      case ReasoningNote():
        pass
  return result


def to_tool_declarations(tools: Sequence[InvokableTool]) -> list[dict]:
  return [
    {
      "type": "function",
      "name": tool.name,
      "description": tool.description,
      "parameters": with_explain(tool.parameter_schema),
    }
    for tool in tools
  ]


def to_tool_choice(tool_choice: ToolChoice):
  match tool_choice.mode:
    case ToolChoiceMode.AUTO:
      return "auto"
    case ToolChoiceMode.DISABLE:
      return "none"
    case ToolChoiceMode.FORCED:
      return {"type": "function", "name": tool_choice.name}


def parse_arguments(raw) -> object:
  """
  Decode a function call's argument string.

  Anything that is not valid JSON is passed on as the raw string; the tool
  registry then reports it to the model as an error.
  """
  if raw is None or raw == "":
    return {}
  if not isinstance(raw, str):
    return raw
  try:
    return json.loads(raw)
  except json.JSONDecodeError:
    return raw


class ResponsesClient(InfoContext, DebugContext):
  def __init__(
    self,
    candidate: ModelCandidate,
    settings: Settings,
    client: Optional[AsyncOpenAI] = None,
  ):
    self.logger = get_logger("provider")
    self.candidate = candidate
    self.settings = settings
    self._client = client

  async def _get_client(self) -> AsyncOpenAI:
    if self._client is None:
      self._client = await get_shared_openai_client(self.settings)
    return self._client

  def build_request(self, working: WorkingCopy, tools: Sequence[InvokableTool], tool_choice: ToolChoice) -> dict:
    request = {
      "model": self.candidate.name,
      "input": to_input_items(working.items, self.candidate.capabilities.supports_vision),
      "max_output_tokens": self.settings.max_output_tokens,
      "store": False,
      "stream": True,
    }
    if tools and self.candidate.capabilities.supports_tools:
      request["tools"] = to_tool_declarations(tools)
      request["tool_choice"] = to_tool_choice(tool_choice)
    if self.candidate.reasoning_effort:
      request["reasoning"] = {"effort": self.candidate.reasoning_effort}
    return request

  async def run(
    self,
    working: WorkingCopy,
    tools: Sequence[InvokableTool],
    tool_choice: ToolChoice,
    on_delta: Optional[DeltaCallback] = None,
  ) -> AsyncIterator[NormalizedEvent]:
    request = self.build_request(working, tools, tool_choice)
    self.logger.info(f"Sending {len(request['input'])} items to model '{self.candidate.name}'")
    self.logger.debug(f"Responses request: {request}")

    try:
      client = await self._get_client()
    except openai.OpenAIError as e:
      raise ProviderRequestError(f"client could not be created: {e}", self.candidate.name)

    try:
      stream = await client.responses.create(**request)
    except openai.APIStatusError as e:
      if e.status_code >= 500:
        raise NetworkError(f"server error {e.status_code}: {e.message}", self.candidate.name)
      raise ProviderRequestError(f"request rejected ({e.status_code}): {e.message}", self.candidate.name, e.status_code)
    except openai.APIConnectionError as e:
      raise NetworkError(f"connection failed: {e}", self.candidate.name)
    except openai.APIError as e:
      raise ProtocolError(f"request failed: {e.message}", self.candidate.name)

    try:
      async for event in stream:
        terminal = False
        async for normalized in self._handle_event(event, on_delta):
          yield normalized
          terminal = isinstance(normalized, Terminal)
        if terminal:
          return
    except openai.APIStatusError as e:
      raise NetworkError(f"stream failed ({e.status_code}): {e.message}", self.candidate.name)
    except openai.APIConnectionError as e:
      raise NetworkError(f"stream interrupted: {e}", self.candidate.name)
    except openai.APIError as e:
      # error payloads inside the stream and responses that fail validation
      raise ProtocolError(f"stream error: {e.message}", self.candidate.name)

    raise ProtocolError("stream ended without a terminal event", self.candidate.name)

  async def _handle_event(self, event, on_delta: Optional[DeltaCallback]) -> AsyncIterator[NormalizedEvent]:
    event_type = getattr(event, "type", None)
    self.logger.debug(f"Responses event: {event_type}")

    match event_type:
      case "response.queued":
        yield StatusUpdate("Queued...")
      case "response.in_progress":
        yield StatusUpdate("Thinking...")
      case "response.output_text.delta":
        if on_delta is not None:
          await on_delta(event.delta)
      case "response.output_item.done":
        item_event = self._handle_output_item(event.item)
        if item_event is not None:
          yield item_event
      case "response.completed":
        yield Terminal(TerminalStatus.OK)
      case "response.failed":
        error = getattr(event.response, "error", None)
        reason = getattr(error, "message", None) or "response failed"
        self.logger.warning(f"Model '{self.candidate.name}' failed: {reason}")
        yield Terminal(TerminalStatus.FAILED, reason)
      case "response.incomplete":
        details = getattr(event.response, "incomplete_details", None)
        reason = getattr(details, "reason", None) or "unknown"
        self.logger.warning(f"Model '{self.candidate.name}' returned an incomplete response: {reason}")
        yield Terminal(TerminalStatus.INCOMPLETE, f"incomplete response: {reason}")
      case "error":
        reason = getattr(event, "message", None) or "stream error"
        self.logger.warning(f"Model '{self.candidate.name}' stream error: {reason}")
        yield Terminal(TerminalStatus.FAILED, reason)
      case _:
        pass

  def _handle_output_item(self, item) -> Optional[NormalizedEvent]:
    item_type = getattr(item, "type", None)
    match item_type:
      case "message":
        texts = []
        for part in getattr(item, "content", None) or []:
          part_type = getattr(part, "type", None)
          if part_type == "output_text":
            texts.append(part.text)
          elif part_type == "refusal":
            texts.append(part.refusal)
        return TextDelta("".join(texts))
      case "function_call":
        if not getattr(item, "name", None):
          raise ProtocolError("function call without a name", self.candidate.name)
        return ToolCallRequested(item.call_id, item.name, parse_arguments(item.arguments))
      case "reasoning":
        summary = "\n".join(s.text for s in (getattr(item, "summary", None) or []) if getattr(s, "text", None))
        if summary:
          return StatusUpdate(summary.splitlines()[0][:100], trace=summary)
        return StatusUpdate("Reasoning...")
      case _:
        self.logger.debug(f"Ignoring output item of type '{item_type}'")
        return None
