from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Protocol


@dataclass(frozen=True)
class ToolOutcome:
  output: str
  is_error: bool = False

  @classmethod
  def ok(cls, output: str) -> "ToolOutcome":
    return cls(output, False)

  @classmethod
  def error(cls, message: str) -> "ToolOutcome":
    return cls(message, True)


@dataclass
class ToolContext:
  """
  What a tool may know about the turn that invoked it.
  """

  channel_id: str
  user_id: str
  on_progress: Optional[Callable[[str], Awaitable[None]]] = None
  extra: dict[str, Any] = field(default_factory=dict)


class InvokableTool(Protocol):
  name: str
  description: str
  parameter_schema: dict

  async def execute(self, arguments: dict, context: Optional[ToolContext]) -> ToolOutcome: ...
