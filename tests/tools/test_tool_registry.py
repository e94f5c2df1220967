import json

import pytest

from observer.context.items import ToolCall, ToolStatus
from observer.errors import ToolExecutionError, ToolNotFound
from observer.tools.builtin import builtin_tools, get_time, text_length
from observer.tools.protocol import ToolContext
from observer.tools.registry import EXPLAIN_ARGUMENT, ToolRegistry, with_explain
from observer.tools.tool import Tool


def echo(message: str) -> str:
  """
  Echo a message back.

  :param message: The message to echo
  """
  return message


async def failing() -> str:
  """Always reports a failure."""
  raise ToolExecutionError("failing", "nothing to see here")


class TestToolRegistry:
  def test_register_and_get(self):
    registry = ToolRegistry([Tool(echo)])

    assert registry.get("echo").name == "echo"
    assert "echo" in registry
    assert len(registry) == 1

  def test_duplicate_registration_fails(self):
    registry = ToolRegistry([Tool(echo)])

    with pytest.raises(ValueError):
      registry.register(Tool(echo))

  def test_unknown_tool(self):
    with pytest.raises(ToolNotFound) as exc_info:
      ToolRegistry().get("missing")

    assert exc_info.value.name == "missing"

  def test_disabled_tools_are_not_advertised(self):
    registry = ToolRegistry(builtin_tools(), disabled=["get_time"])

    assert [tool.name for tool in registry.specs()] == ["text_length"]
    assert registry.names() == ["text_length"]
    assert "get_time" in registry

  @pytest.mark.asyncio
  async def test_execute_returns_result_with_same_call_id(self):
    registry = ToolRegistry([Tool(echo)])

    result = await registry.execute(ToolCall("call-7", "echo", {"message": "hi"}))

    assert result.call_id == "call-7"
    assert result.tool_name == "echo"
    assert result.output == "hi"
    assert result.status == ToolStatus.OK

  @pytest.mark.asyncio
  async def test_execute_unknown_tool_raises(self):
    with pytest.raises(ToolNotFound):
      await ToolRegistry().execute(ToolCall("c1", "missing", {}))

  @pytest.mark.asyncio
  async def test_non_object_arguments_are_an_error_result(self):
    registry = ToolRegistry([Tool(echo)])

    result = await registry.execute(ToolCall("c1", "echo", "{broken"))

    assert result.status == ToolStatus.ERROR
    assert result.output == "arguments must be a JSON object, got str"

  @pytest.mark.asyncio
  async def test_explain_is_stripped_and_reported(self):
    seen = []

    async def on_progress(text):
      seen.append(text)

    registry = ToolRegistry([Tool(echo)])
    context = ToolContext("c", "u", on_progress=on_progress)

    result = await registry.execute(
      ToolCall("c1", "echo", {"message": "hi", EXPLAIN_ARGUMENT: "Echoing the greeting"}), context
    )

    assert result.status == ToolStatus.OK
    assert result.output == "hi"
    assert seen == ["echo: Echoing the greeting"]

  @pytest.mark.asyncio
  async def test_tool_failure_becomes_error_result(self):
    registry = ToolRegistry([Tool(failing)])

    result = await registry.execute(ToolCall("c1", "failing", {}))

    assert result.is_error
    assert result.output == "nothing to see here"

  def test_with_explain_adds_optional_property(self):
    schema = {"type": "object", "properties": {"a": {"type": "string"}}, "required": ["a"]}

    extended = with_explain(schema)

    assert EXPLAIN_ARGUMENT in extended["properties"]
    assert extended["required"] == ["a"]
    assert EXPLAIN_ARGUMENT not in schema["properties"]


class TestBuiltinTools:
  def test_get_time_without_country_is_utc(self):
    assert get_time().startswith("The current time in UTC is: ")

  def test_get_time_for_country(self):
    output = get_time("jp")

    assert output.startswith("The current time in JP (Asia/Tokyo) is: ")
    assert output.endswith("+09:00")

  def test_get_time_unsupported_country(self):
    with pytest.raises(ToolExecutionError) as exc_info:
      get_time("XX")

    assert exc_info.value.message == "Unsupported country code: XX"

  @pytest.mark.asyncio
  async def test_get_time_unsupported_country_is_fed_back(self):
    registry = ToolRegistry(builtin_tools())

    result = await registry.execute(ToolCall("c1", "get_time", {"country_code": "XX"}))

    assert result.status == ToolStatus.ERROR
    assert "Unsupported country code" in result.output

  def test_text_length_counts_characters(self):
    assert json.loads(text_length("héllo")) == {"length": 5}
    assert json.loads(text_length("")) == {"length": 0}

  def test_builtin_schemas(self):
    tools = {tool.name: tool for tool in builtin_tools()}

    assert tools["get_time"].parameter_schema["required"] == []
    assert tools["get_time"].parameter_schema["properties"]["country_code"]["type"] == "string"
    assert tools["text_length"].parameter_schema["required"] == ["text"]
