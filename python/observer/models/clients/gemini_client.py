"""
Single-shot-family adapter for the Gemini ``generateContent`` API.

One request returns one JSON object; there is no event stream and no
server-side continuation. To support multi-step tool use the adapter loops
itself: after yielding function-call parts it waits until the consumer has
added the matching tool results to the working copy, then re-sends the whole
conversation. The loop stops after ``MAX_ITERATIONS`` requests.

System and developer messages are sent as ``systemInstruction``; everything
else goes into ``contents`` with the roles ``user`` and ``model``.
"""

import json
import uuid

from typing import AsyncIterator, Optional, Sequence

import httpx

from ...config import Settings
from ...context.context import WorkingCopy
from ...context.items import Message, Role, ToolCall, ToolResult
from ...errors import NetworkError, ProtocolError, ProviderRequestError
from ...logs import get_logger, InfoContext, DebugContext
from ...tools.protocol import InvokableTool
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
from .protocol import DeltaCallback
from .shared_clients import get_shared_http_client

MAX_ITERATIONS = 10

INSTRUCTION_ROLES = (Role.SYSTEM, Role.DEVELOPER)


def to_request_body(items, max_output_tokens: int) -> dict:
  """
  Translate conversation items into a generateContent request body.

  :param items: Conversation items, oldest first
  :param max_output_tokens: Output cap for the request
  :return: Request body without tool declarations
  """
  system_parts: list[str] = []
  contents: list[dict] = []
  names_by_call: dict[str, str] = {}

  for item in items:
    match item:
      case Message(role=role) if role in INSTRUCTION_ROLES:
        text = item.text_with_image_placeholders()
        if text.strip():
          system_parts.append(text)
      case Message(role=Role.USER):
        contents.append({"role": "user", "parts": [{"text": item.text_with_image_placeholders()}]})
      case Message(role=Role.ASSISTANT):
        contents.append({"role": "model", "parts": [{"text": item.text_with_image_placeholders()}]})
      case ToolCall():
        names_by_call[item.call_id] = item.tool_name
        args = item.arguments if isinstance(item.arguments, dict) else {}
        contents.append({"role": "model", "parts": [{"functionCall": {"name": item.tool_name, "args": args}}]})
      case ToolResult():
        name = item.tool_name or names_by_call.get(item.call_id, "")
        contents.append(
          {
            "role": "user",
            "parts": [{"functionResponse": {"name": name, "response": {"output": item.output}}}],
          }
        )

  body = {"contents": contents, "generationConfig": {"maxOutputTokens": max_output_tokens}}
  if system_parts:
    body["systemInstruction"] = {"parts": [{"text": "\n".join(system_parts)}]}
  return body


def to_tool_config(tool_choice: ToolChoice) -> dict:
  match tool_choice.mode:
    case ToolChoiceMode.AUTO:
      config = {"mode": "AUTO"}
    case ToolChoiceMode.DISABLE:
      config = {"mode": "NONE"}
    case ToolChoiceMode.FORCED:
      config = {"mode": "ANY", "allowedFunctionNames": [tool_choice.name]}
  return {"functionCallingConfig": config}


class GeminiClient(InfoContext, DebugContext):
  def __init__(
    self,
    candidate: ModelCandidate,
    settings: Settings,
    http: Optional[httpx.AsyncClient] = None,
  ):
    self.logger = get_logger("provider")
    self.candidate = candidate
    self.settings = settings
    self.api_key = settings.gemini_api_key or ""
    self.url = f"{settings.gemini_base_url.rstrip('/')}/models/{candidate.name}:generateContent"
    self._http = http

  async def _get_http(self) -> httpx.AsyncClient:
    if self._http is None:
      self._http = await get_shared_http_client()
    return self._http

  def _redact(self, text: str) -> str:
    if self.api_key:
      return text.replace(self.api_key, "***")
    return text

  def build_request(self, working: WorkingCopy, tools: Sequence[InvokableTool], tool_choice: ToolChoice) -> dict:
    body = to_request_body(working.items, self.settings.max_output_tokens)
    if tools and self.candidate.capabilities.supports_tools:
      body["tools"] = [
        {
          "functionDeclarations": [
            {"name": tool.name, "description": tool.description, "parameters": tool.parameter_schema}
            for tool in tools
          ]
        }
      ]
      body["toolConfig"] = to_tool_config(tool_choice)
    return body

  async def _post(self, body: dict, iteration: int) -> dict:
    http = await self._get_http()
    try:
      response = await http.post(self.url, params={"key": self.api_key}, json=body)
    except httpx.TransportError as e:
      raise NetworkError(self._redact(f"gemini transport error: {type(e).__name__}: {e}"), self.candidate.name)

    if response.status_code != 200:
      reason = self._redact(f"gemini http error: {response.status_code}: {response.text}")
      if response.status_code >= 500:
        raise NetworkError(reason, self.candidate.name)
      if iteration == 0:
        raise ProviderRequestError(reason, self.candidate.name, response.status_code)
      raise ProtocolError(reason, self.candidate.name)

    try:
      data = response.json()
    except json.JSONDecodeError:
      raise ProtocolError("gemini: response is not JSON", self.candidate.name)
    if not isinstance(data, dict):
      raise ProtocolError("gemini: response is not an object", self.candidate.name)
    return data

  async def run(
    self,
    working: WorkingCopy,
    tools: Sequence[InvokableTool],
    tool_choice: ToolChoice,
    on_delta: Optional[DeltaCallback] = None,
  ) -> AsyncIterator[NormalizedEvent]:
    awaiting = False
    for iteration in range(MAX_ITERATIONS):
      yield StatusUpdate(f"Thinking... (gemini step {iteration + 1}/{MAX_ITERATIONS})")

      # Reads the working copy again: the consumer has added tool results by now
      body = self.build_request(working, tools, tool_choice)
      with self.debug(
        f"Sending {len(body['contents'])} contents to model '{self.candidate.name}'",
        f"Model '{self.candidate.name}' answered",
      ):
        data = await self._post(body, iteration)
      self.logger.debug(f"generateContent response: {data}")

      candidates = data.get("candidates") or []
      if not candidates:
        raise ProtocolError("gemini: empty candidates", self.candidate.name)
      parts = (candidates[0].get("content") or {}).get("parts") or []

      text = "".join(part["text"] for part in parts if isinstance(part.get("text"), str))
      calls = [part["functionCall"] for part in parts if isinstance(part.get("functionCall"), dict)]

      if text:
        if on_delta is not None:
          await on_delta(text)
        yield TextDelta(text)

      for call in calls:
        name = call.get("name")
        if not name:
          raise ProtocolError("gemini: function call without a name", self.candidate.name)
        call_id = call.get("id") or f"gemini-{uuid.uuid4().hex[:12]}"
        yield ToolCallRequested(call_id, name, call.get("args") or {})

      awaiting = bool(calls)
      if not awaiting:
        break
    else:
      self.logger.warning(f"Model '{self.candidate.name}' still calling tools after {MAX_ITERATIONS} requests")
      awaiting = False

    yield Terminal(TerminalStatus.OK, awaiting_tool_results=awaiting)
