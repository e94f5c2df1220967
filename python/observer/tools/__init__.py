from .protocol import InvokableTool, ToolContext, ToolOutcome
from .tool import Tool
from .registry import ToolRegistry, with_explain, EXPLAIN_ARGUMENT
from .builtin import builtin_tools, get_time, text_length
