from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union


@dataclass(frozen=True)
class TextDelta:
  """A finished piece of answer text."""

  text: str


@dataclass(frozen=True)
class ToolCallRequested:
  call_id: str
  name: str
  arguments: Any


@dataclass(frozen=True)
class StatusUpdate:
  """
  Progress text for the user interface.

  ``trace`` carries a reasoning summary that is kept in the working copy as a
  ReasoningNote for the rest of the run.
  """

  text: str
  trace: Optional[str] = None


class TerminalStatus(Enum):
  OK = "ok"
  FAILED = "failed"
  INCOMPLETE = "incomplete"


@dataclass(frozen=True)
class Terminal:
  """
  Last event of an adapter run.

  ``awaiting_tool_results`` says whether the model still has to see the
  results of tool calls it made in this run. Adapters that continue on their
  own after a tool call set it; when left as None, any tool call in the run
  counts as awaiting.
  """

  status: TerminalStatus = TerminalStatus.OK
  reason: Optional[str] = None
  awaiting_tool_results: Optional[bool] = None


NormalizedEvent = Union[TextDelta, ToolCallRequested, StatusUpdate, Terminal]


class ToolChoiceMode(Enum):
  AUTO = "auto"
  DISABLE = "none"
  FORCED = "forced"


@dataclass(frozen=True)
class ToolChoice:
  mode: ToolChoiceMode = ToolChoiceMode.AUTO
  name: Optional[str] = None

  @classmethod
  def auto(cls) -> "ToolChoice":
    return cls(ToolChoiceMode.AUTO)

  @classmethod
  def disable(cls) -> "ToolChoice":
    return cls(ToolChoiceMode.DISABLE)

  @classmethod
  def forced(cls, name: str) -> "ToolChoice":
    return cls(ToolChoiceMode.FORCED, name)
