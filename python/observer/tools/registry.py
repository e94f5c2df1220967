from typing import Iterable, Optional

from .protocol import InvokableTool, ToolContext
from ..context.items import ToolCall, ToolResult, ToolStatus
from ..errors import ToolNotFound
from ..logs import get_logger

logger = get_logger("tool")

EXPLAIN_ARGUMENT = "$explain"


def with_explain(schema: dict) -> dict:
  """
  Add the optional ``$explain`` property to a tool's parameter schema.

  The model fills it with a short note on what it is doing, which is shown as
  progress and removed before the tool runs.
  """
  properties = dict(schema.get("properties", {}))
  properties[EXPLAIN_ARGUMENT] = {
    "type": "string",
    "description": "A brief explanation of what you are doing with this tool.",
  }
  return {**schema, "properties": properties}


class ToolRegistry:
  """
  Maps tool names to tools.

  Disabled tools stay registered but are not advertised; a model that calls
  one anyway gets the tool executed, since the name still resolves.
  """

  def __init__(self, tools: Iterable[InvokableTool] = (), disabled: Iterable[str] = ()):
    self.tools: dict[str, InvokableTool] = {}
    self.disabled = set(disabled)
    for tool in tools:
      self.register(tool)

  def register(self, tool: InvokableTool):
    if tool.name in self.tools:
      raise ValueError(f"Tool '{tool.name}' is already registered")
    self.tools[tool.name] = tool

  def get(self, name: str) -> InvokableTool:
    tool = self.tools.get(name)
    if tool is None:
      raise ToolNotFound(name)
    return tool

  def names(self) -> list[str]:
    return [name for name in self.tools if name not in self.disabled]

  def specs(self) -> list[InvokableTool]:
    """Tools to advertise to the model, in registration order."""
    return [tool for name, tool in self.tools.items() if name not in self.disabled]

  def __len__(self):
    return len(self.tools)

  def __contains__(self, name: str):
    return name in self.tools

  async def execute(self, call: ToolCall, context: Optional[ToolContext] = None) -> ToolResult:
    """
    Run one tool call and wrap the outcome as a ToolResult.

    :param call: The call requested by the model
    :param context: Turn information passed through to the tool
    :return: A ToolResult with the same call_id, status error if the tool failed
    :raises ToolNotFound: If no tool with that name is registered
    """
    tool = self.get(call.tool_name)

    arguments = call.arguments
    if not isinstance(arguments, dict):
      return ToolResult(
        call.call_id,
        f"arguments must be a JSON object, got {type(arguments).__name__}",
        ToolStatus.ERROR,
        call.tool_name,
      )

    arguments = dict(arguments)
    explain = arguments.pop(EXPLAIN_ARGUMENT, None)
    if explain and context and context.on_progress:
      await context.on_progress(f"{call.tool_name}: {explain}")

    outcome = await tool.execute(arguments, context)
    status = ToolStatus.ERROR if outcome.is_error else ToolStatus.OK
    if outcome.is_error:
      logger.info(f"Tool '{call.tool_name}' returned an error: {outcome.output}")
    return ToolResult(call.call_id, outcome.output, status, call.tool_name)
