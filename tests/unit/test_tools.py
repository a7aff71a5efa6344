import asyncio

import pytest
from pydantic_ai import RunContext, Tool

from stepflow.errors import ToolCallAssemblyError, ToolInvocationError, ToolNotFoundError
from stepflow.tools import ToolCallAssembler, ToolRegistry


@pytest.fixture
def registry():
    registry = ToolRegistry()

    @registry.register
    def add(a: int, b: int) -> int:
        """Add two numbers."""
        return a + b

    @registry.register(name="shout")
    async def upper(text: str) -> str:
        await asyncio.sleep(0)
        return text.upper()

    @registry.register
    def broken() -> None:
        raise RuntimeError("boom")

    return registry


def test_registered_names(registry):
    assert registry.names() == ["add", "broken", "shout"]
    assert registry.get("add").description == "Add two numbers."
    assert len(registry.as_pydantic_ai_tools()) == 3


@pytest.mark.asyncio
async def test_invoke_sync_and_async_tools(registry):
    assert await registry.invoke("add", {"a": 2, "b": 3}) == "5"
    assert await registry.invoke("shout", {"text": "hi"}) == "HI"


@pytest.mark.asyncio
async def test_unknown_tool(registry):
    with pytest.raises(ToolNotFoundError) as excinfo:
        await registry.invoke("nope", {})
    assert str(excinfo.value) == "Tool 'nope' not found."


@pytest.mark.asyncio
async def test_tool_exception_is_wrapped(registry):
    with pytest.raises(ToolInvocationError, match="boom"):
        await registry.invoke("broken", {})


def test_context_tools_are_rejected():
    registry = ToolRegistry()

    def needs_ctx(ctx: RunContext[None]) -> str:
        return "x"

    with pytest.raises(ValueError):
        registry.add(Tool(needs_ctx, takes_ctx=True))


@pytest.mark.asyncio
async def test_assembled_call_can_be_invoked(registry):
    assembler = ToolCallAssembler()
    assembler.apply_delta(0, call_id="call-1", name="add")
    assembler.apply_delta(0, arguments='{"a": 1,')
    assembler.apply_delta(0, arguments=' "b": 41}')

    (call,) = assembler.finalize()

    assert call.tool_call_id == "call-1"
    assert await registry.invoke_call(call) == "42"


def test_assembler_orders_by_index():
    assembler = ToolCallAssembler()
    assembler.apply_delta(1, name="second")
    assembler.apply_delta(0, name="first")

    parts = assembler.finalize()

    assert [p.tool_name for p in parts] == ["first", "second"]
    assert parts[0].args_as_dict() == {}


@pytest.mark.parametrize(
    "deltas",
    [
        [{"arguments": "{}"}],
        [{"name": "x", "arguments": "{not json"}],
        [{"name": "x", "arguments": "[1, 2]"}],
    ],
)
def test_assembler_rejects_bad_calls(deltas):
    assembler = ToolCallAssembler()
    for delta in deltas:
        assembler.apply_delta(0, **delta)

    with pytest.raises(ToolCallAssemblyError):
        assembler.finalize()


def test_no_deltas_after_finalize():
    assembler = ToolCallAssembler()
    assembler.finalize()

    with pytest.raises(ToolCallAssemblyError):
        assembler.apply_delta(0, name="late")
