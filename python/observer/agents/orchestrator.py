import time

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Optional, Sequence

from ..config import Settings
from ..context.context import Context, WorkingCopy
from ..context.items import Message, ReasoningNote, ToolCall
from ..context.store import ContextStore
from ..errors import ModelsExhausted, ProtocolError, ProviderError, ProviderRequestError, ToolNotFound
from ..logs import get_logger
from ..models.clients import ProviderAdapter, DeltaCallback, create_adapter
from ..models.events import StatusUpdate, Terminal, TerminalStatus, TextDelta, ToolCallRequested, ToolChoice
from ..models.model import ModelCandidate
from ..tools.protocol import ToolContext
from ..tools.registry import ToolRegistry

logger = get_logger("orchestrator")

ProgressCallback = Callable[[str], Awaitable[None]]
AdapterFactory = Callable[[ModelCandidate, Settings], ProviderAdapter]


class State(Enum):
  """
  States of one model attempt.

    - INIT: Build the working copy from the snapshot, instructions and inbound message
    - STREAMING: Invoke the adapter once and consume its events, running requested tools
    - TOOLS_PENDING: The model has tool results it has not seen yet
    - FINALIZING: Assemble the answer text
    - DONE: The attempt succeeded
    - FAILED: The attempt raised; the error is re-raised to the fold
  """

  INIT = "init"
  STREAMING = "streaming"
  TOOLS_PENDING = "tools_pending"
  FINALIZING = "finalizing"
  DONE = "done"
  FAILED = "failed"


# INIT → STREAMING → (TOOLS_PENDING → STREAMING)* → FINALIZING → DONE
#
# STREAMING transitions:
# - → TOOLS_PENDING: [tool calls whose results the model has not seen] AND [steps remain]
# - → FINALIZING: [no such tool calls] OR [last step, which runs with tools disabled]
# - → FAILED: [adapter/network/protocol error] OR [unknown tool]
#
# A request the backend rejects outright is retried once in the same step
# with no tools, before the attempt counts as failed.


@dataclass
class Attempt:
  model: str
  ok: bool
  reason: Optional[str] = None
  elapsed: float = 0.0


@dataclass
class TurnResult:
  text: str
  model: str
  tool_usage: dict[str, int] = field(default_factory=dict)
  attempts: list[Attempt] = field(default_factory=list)

  def footer(self) -> str:
    if self.tool_usage:
      tools = ", ".join(f"{name} x{count}" for name, count in self.tool_usage.items())
      return f"-# model: {self.model} | tools: {tools}"
    return f"-# model: {self.model}"

  def render(self) -> str:
    text = self.text if self.text.strip() else "(no output)"
    return f"{text}\n{self.footer()}"


class StateMachine:
  """
  Drive one candidate model through a bounded number of adapter invocations.

  The canonical context is never touched here: everything happens on a
  WorkingCopy, and the caller merges its delta only after success.

  Attributes:
    candidate: The model being tried
    adapter: Adapter for the candidate's protocol family
    working: The run's working copy, set in INIT
    step: Number of adapter invocations so far, retries excluded
    invocations: Number of adapter invocations including the retry without tools
    tool_usage: Tool name to number of executions, in first-use order
  """

  def __init__(
    self,
    candidate: ModelCandidate,
    adapter: ProviderAdapter,
    registry: ToolRegistry,
    base: Context,
    instructions: Sequence[Message],
    inbound: Sequence[Message],
    tool_context: ToolContext,
    max_steps: int,
    progress: Optional[ProgressCallback] = None,
    on_delta: Optional[DeltaCallback] = None,
  ):
    self.candidate = candidate
    self.adapter = adapter
    self.registry = registry
    self.base = base
    self.instructions = list(instructions)
    self.inbound = list(inbound)
    self.tool_context = tool_context
    self.max_steps = max_steps
    self.progress = progress
    self.on_delta = on_delta

    self.state = State.INIT
    self.working: Optional[WorkingCopy] = None
    self.step = 0
    self.invocations = 0
    self.tools_disabled = not candidate.capabilities.supports_tools
    self.texts: list[str] = []
    self.tool_usage: Counter = Counter()
    self.text = ""

  async def _report(self, text: str):
    if self.progress is not None:
      await self.progress(text)

  async def run(self) -> str:
    """
    Run until DONE.

    :return: The accumulated answer text
    :raises ProviderError: If the adapter fails
    :raises ToolNotFound: If the model calls an unregistered tool
    """
    try:
      while self.state != State.DONE:
        await self.transition()
    except (ProviderError, ToolNotFound):
      self.state = State.FAILED
      raise
    return self.text

  async def transition(self):
    logger.debug(f"[{self.candidate.name}→{self.state.name}] step={self.step}/{self.max_steps}")

    match self.state:
      case State.INIT:
        self.working = WorkingCopy(self.base, self.instructions)
        self.working.extend(self.inbound)
        self.state = State.STREAMING
      case State.STREAMING:
        await self._handle_streaming_state()
      case State.TOOLS_PENDING:
        self.state = State.STREAMING
      case State.FINALIZING:
        self.text = "\n".join(text for text in self.texts if text)
        self.state = State.DONE

  async def _handle_streaming_state(self):
    self.step += 1
    last_step = self.step >= self.max_steps
    await self._report(f"Thinking... (step {self.step}/{self.max_steps})")

    while True:
      tools = [] if self.tools_disabled else self.registry.specs()
      tool_choice = ToolChoice.disable() if last_step or self.tools_disabled else ToolChoice.auto()
      delta_mark = len(self.working.delta)
      try:
        awaiting = await self._invoke(tools, tool_choice)
        break
      except ProviderRequestError as e:
        produced = any(not isinstance(item, ReasoningNote) for item in self.working.delta[delta_mark:])
        if self.tools_disabled or produced:
          raise
        logger.warning(f"Model '{self.candidate.name}' rejected the request ({e.reason}), retrying without tools")
        self.tools_disabled = True

    if awaiting and not last_step:
      self.state = State.TOOLS_PENDING
    else:
      self.state = State.FINALIZING

  async def _invoke(self, tools, tool_choice: ToolChoice) -> bool:
    """
    Invoke the adapter once and consume its events.

    :return: Whether the model still has to see tool results
    """
    self.invocations += 1
    calls = 0
    terminal: Optional[Terminal] = None

    async for event in self.adapter.run(self.working, tools, tool_choice, self.on_delta):
      match event:
        case TextDelta(text=text):
          if text:
            self.working.add(Message.assistant(text))
            self.texts.append(text)
        case ToolCallRequested(call_id=call_id, name=name, arguments=arguments):
          calls += 1
          await self._execute_tool(ToolCall(call_id, name, arguments))
        case StatusUpdate(text=text, trace=trace):
          if trace:
            self.working.add(ReasoningNote(trace))
          await self._report(text)
        case Terminal():
          terminal = event

    if terminal is None:
      raise ProtocolError("adapter ended without a terminal event", self.candidate.name)
    if terminal.status is not TerminalStatus.OK:
      raise ProtocolError(terminal.reason or terminal.status.value, self.candidate.name)

    if terminal.awaiting_tool_results is not None:
      return terminal.awaiting_tool_results
    return calls > 0

  async def _execute_tool(self, call: ToolCall):
    # Raises ToolNotFound before anything is added to the working copy
    self.registry.get(call.tool_name)
    self.working.add(call)
    await self._report(f"Running tool {call.tool_name}")
    result = await self.registry.execute(call, self.tool_context)
    self.working.add(result)
    self.tool_usage[call.tool_name] += 1


class Orchestrator:
  """
  Run one turn: try candidate models in order and merge the winner's messages.

  The candidate loop is a fold over an attempts list. In auto mode a
  ProviderError moves on to the next candidate; outside auto mode, and for
  ToolNotFound in any mode, the first failure ends the turn.
  """

  def __init__(
    self,
    store: ContextStore,
    registry: ToolRegistry,
    settings: Settings,
    adapter_factory: AdapterFactory = create_adapter,
  ):
    self.store = store
    self.registry = registry
    self.settings = settings
    self.adapter_factory = adapter_factory

  async def run_turn(
    self,
    channel_id: str,
    inbound: Message,
    candidates: Sequence[ModelCandidate],
    system_prompt: str,
    tool_context: ToolContext,
    auto: bool = False,
    progress: Optional[ProgressCallback] = None,
    on_delta: Optional[DeltaCallback] = None,
  ) -> TurnResult:
    """
    Run a turn against the candidates and merge the result into the channel.

    :param channel_id: Channel whose context is read and merged into
    :param inbound: The user's message for this turn
    :param candidates: Models to try, in order
    :param system_prompt: System instruction for the run (never merged)
    :param tool_context: Passed to every tool execution
    :param auto: Whether to fall back to the next candidate on provider failure
    :param progress: Receives status text
    :param on_delta: Receives partial output text
    :return: The successful attempt's result
    :raises ModelsExhausted: If no candidate succeeded; nothing is merged
    """
    attempts: list[Attempt] = []

    for candidate in candidates:
      started = time.monotonic()
      base = await self.store.snapshot(channel_id)
      machine = StateMachine(
        candidate,
        self.adapter_factory(candidate, self.settings),
        self.registry,
        base,
        [Message.system(system_prompt)],
        [inbound],
        tool_context,
        self.settings.max_steps,
        progress,
        on_delta,
      )

      try:
        text = await machine.run()
      except ProviderError as e:
        attempts.append(Attempt(candidate.name, False, e.reason, time.monotonic() - started))
        logger.warning(f"Model '{candidate.name}' failed: {e.reason}")
        if auto:
          continue
        break
      except ToolNotFound as e:
        attempts.append(Attempt(candidate.name, False, str(e), time.monotonic() - started))
        logger.error(f"Model '{candidate.name}' called an unregistered tool '{e.name}'")
        break

      attempts.append(Attempt(candidate.name, True, None, time.monotonic() - started))
      await self.store.merge_messages_only(channel_id, machine.working.delta)
      logger.info(
        f"Turn in channel '{channel_id}' answered by '{candidate.name}' "
        f"after {machine.invocations} invocations, tools: {dict(machine.tool_usage)}"
      )
      return TurnResult(text, candidate.name, dict(machine.tool_usage), attempts)

    raise ModelsExhausted(attempts)
