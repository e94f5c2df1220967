import inspect
import re
import traceback

from functools import wraps
from typing import get_type_hints, Optional, get_origin, get_args, Union

from docstring_parser import parse

from .protocol import InvokableTool, ToolContext, ToolOutcome
from ..errors import ToolExecutionError
from ..logs.logs import InfoContext

CONTEXT_PARAMETER = "context"


class Tool(InvokableTool, InfoContext):
  """
  A tool backed by a plain (sync or async) function.

  The name, description and JSON parameter schema come from the function's
  signature and its reST docstring. A parameter called ``context`` is not
  advertised to the model; it receives the ``ToolContext`` of the turn.

  The function may return anything (it is converted with ``str``) and may
  raise: every exception becomes an error outcome, so ``execute`` never raises.
  """

  _logger = None

  @classmethod
  def class_logger(cls):
    if cls._logger:
      return cls._logger
    else:
      from ..logs.logs import get_logger

      cls._logger = get_logger("tool")
      return cls._logger

  def __init__(self, func, name: Optional[str] = None):
    self.logger = Tool.class_logger()
    self.name = name or func.__name__
    if re.match(r"^[a-z0-9_-]+$", self.name) is None:
      raise ValueError("Tool name may only contain [a-z0-9_-] characters")
    self.description, self.parameter_schema = function_spec(func)
    self.takes_context = CONTEXT_PARAMETER in inspect.signature(func).parameters
    self.signature = inspect.signature(func)
    self.type_hints = get_type_hints(func)
    self.func = wrap(func)

  async def execute(self, arguments: dict, context: Optional[ToolContext] = None) -> ToolOutcome:
    with self.info(f"Invoke tool: '{self.name}'", f"invoked tool: '{self.name}'"):
      self.logger.debug(f"The tool arguments are: {arguments}")
      try:
        args = self._validate_arguments(arguments)
        if self.takes_context:
          args[CONTEXT_PARAMETER] = context
        response = str(await self.func(**args))
        self.logger.debug(f"The tool call succeeded: {response}")
        return ToolOutcome.ok(response)
      except ToolExecutionError as e:
        self.logger.info(f"Tool '{self.name}' reported failure: {e.message}")
        return ToolOutcome.error(e.message)
      except Exception as e:
        self.logger.error(f"Tool '{self.name}' execution failed: {type(e).__name__}: {e}")
        self.logger.debug(traceback.format_exc())
        return ToolOutcome.error(f"Tool execution failed: {type(e).__name__}: {e}")

  def _validate_arguments(self, arguments) -> dict:
    if arguments is None:
      return {}
    if not isinstance(arguments, dict):
      raise ValueError(f"arguments must be an object, got {type(arguments).__name__}")

    params = {name for name in self.signature.parameters if name != CONTEXT_PARAMETER}
    extra_args = set(arguments) - params
    if extra_args:
      raise ValueError(f"Unexpected arguments: {', '.join(sorted(extra_args))}")

    missing = {
      name
      for name, p in self.signature.parameters.items()
      if name in params and p.default == inspect.Parameter.empty and name not in arguments
    }
    if missing:
      raise ValueError(f"Missing required arguments: {', '.join(sorted(missing))}")

    return self._coerce_argument_types(arguments)

  def _coerce_argument_types(self, args: dict) -> dict:
    """
    Coerce argument types to match the function's type hints.

    Models often send numbers and booleans as strings.
    """
    coerced_args = {}
    for arg_name, arg_value in args.items():
      expected_type = self.type_hints.get(arg_name)
      if expected_type is None:
        coerced_args[arg_name] = arg_value
        continue

      # Optional[X] and X | None coerce to X
      if get_origin(expected_type) is Union or type(expected_type).__name__ == "UnionType":
        type_args = get_args(expected_type)
        expected_type = next((t for t in type_args if t is not type(None)), expected_type)

      try:
        coerced_args[arg_name] = coerce_value(arg_value, expected_type)
      except (ValueError, TypeError):
        raise ValueError(
          f"Argument '{arg_name}' has invalid type: expected {getattr(expected_type, '__name__', expected_type)}, "
          f"got {type(arg_value).__name__} (value: {arg_value!r})"
        )

    return coerced_args


def coerce_value(value, expected_type):
  if value is None:
    return None

  origin = get_origin(expected_type)
  if origin is not None:
    if isinstance(value, origin):
      return value
    raise TypeError(f"Cannot coerce {type(value).__name__} to {origin.__name__}")

  if expected_type is bool:
    if isinstance(value, bool):
      return value
    if isinstance(value, str):
      lower_value = value.lower()
      if lower_value in ("true", "1", "yes", "on"):
        return True
      if lower_value in ("false", "0", "no", "off"):
        return False
      raise ValueError(f"Cannot coerce string '{value}' to bool")
    if isinstance(value, (int, float)):
      return bool(value)
    raise TypeError(f"Cannot coerce {type(value).__name__} to bool")

  if expected_type is int:
    if isinstance(value, int) and not isinstance(value, bool):
      return value
    if isinstance(value, (str, float)):
      return int(value)
    raise TypeError(f"Cannot coerce {type(value).__name__} to int")

  if expected_type is float:
    if isinstance(value, float):
      return value
    if isinstance(value, (str, int)) and not isinstance(value, bool):
      return float(value)
    raise TypeError(f"Cannot coerce {type(value).__name__} to float")

  if expected_type is str:
    return value if isinstance(value, str) else str(value)

  if isinstance(expected_type, type) and not isinstance(value, expected_type):
    raise TypeError(f"Cannot coerce {type(value).__name__} to {expected_type.__name__}")
  return value


def wrap(f) -> callable:
  @wraps(f)
  async def wrapper(**kwargs):
    r = f(**kwargs)
    if inspect.iscoroutine(r):
      return await r
    return r

  return wrapper


def function_spec(f) -> tuple[str, dict]:
  """
  Build the description and JSON parameter schema of a function.

  :param f: The function to describe
  :return: (description, parameter_schema)
  """
  parsed = parse(f.__doc__) if f.__doc__ else None
  if parsed and (parsed.short_description or parsed.long_description):
    parts = [parsed.short_description, parsed.long_description]
    description = "\n\n".join(p for p in parts if p)
  else:
    description = f"Function {f.__name__}"
  return description, parameters_spec(f, parsed)


def parameters_spec(f, parsed=None) -> dict:
  f_parameters = {"type": "object", "properties": {}, "required": []}

  signature = inspect.signature(f)
  type_hints = get_type_hints(f)
  doc_params = {p.arg_name: p for p in parsed.params} if parsed else {}

  for p_name, p in signature.parameters.items():
    if p_name == CONTEXT_PARAMETER:
      continue

    # Prefer the type named in the docstring, then the type hint
    hint = type_hints.get(p_name)
    if hint is not None and (get_origin(hint) is Union or type(hint).__name__ == "UnionType"):
      hint = next((t for t in get_args(hint) if t is not type(None)), hint)
    p_type = getattr(get_origin(hint) or hint, "__name__", "Any")
    doc = doc_params.get(p_name)
    if doc and doc.type_name:
      p_type = doc.type_name

    f_parameters["properties"][p_name] = {
      "type": to_json_schema_type(p_type),
      "description": doc.description if doc and doc.description else f"parameter {p_name}",
    }

    if p.default == inspect.Parameter.empty:
      f_parameters["required"].append(p_name)

  return f_parameters


def to_json_schema_type(p_type):
  return {
    "bool": "boolean",
    "int": "integer",
    "float": "number",
    "str": "string",
    "list": "array",
    "dict": "object",
  }.get(p_type, "string")
