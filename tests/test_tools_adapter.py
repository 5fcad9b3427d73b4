import pytest

from studiobridge.tools.adapter import invoke_tool, render_result, validate_call
from studiobridge.utils.exceptions import BridgeTimeoutError, ValidationError, format_tool_error


class _Bridge:
    def __init__(self, result=None, exc=None):
        self.calls = []
        self.result = result
        self.exc = exc

    async def execute(self, method, params=None, retries=None):
        self.calls.append((method, params, retries))
        if self.exc is not None:
            raise self.exc
        return self.result


@pytest.mark.asyncio
async def test_invoke_tool_passes_strings_through():
    bridge = _Bridge(result="Workspace.Baseplate")
    text = await invoke_tool(bridge, "get_selection")
    assert text == "Workspace.Baseplate"
    assert bridge.calls == [("get_selection", {}, None)]


@pytest.mark.asyncio
async def test_invoke_tool_renders_structures_as_indented_json():
    bridge = _Bridge(result={"count": 2})
    text = await invoke_tool(bridge, " get_children ", {"path": "Workspace"}, retries=1)
    assert text == '{\n  "count": 2\n}'
    assert bridge.calls == [("get_children", {"path": "Workspace"}, 1)]


@pytest.mark.asyncio
async def test_invoke_tool_propagates_bridge_errors():
    err = BridgeTimeoutError("get_selection", 3, 30000, False)
    with pytest.raises(BridgeTimeoutError):
        await invoke_tool(_Bridge(exc=err), "get_selection")


@pytest.mark.parametrize(("method", "params"), [("", None), (None, None), ("ok", ["not", "a", "map"])])
def test_validate_call_rejects_bad_shapes(method, params):
    with pytest.raises(ValidationError):
        validate_call(method, params)


def test_render_result_handles_none_and_lists():
    assert render_result(None) == "null"
    assert render_result([1, 2]) == "[\n  1,\n  2\n]"


def test_format_tool_error_uses_bridge_message():
    err = BridgeTimeoutError("get_selection", 1, 50, True)
    assert format_tool_error("get_selection", err) == "Error: Command 'get_selection' timed out after 50ms (attempt 1)"
    detailed = format_tool_error("get_selection", err, include_details=True)
    assert detailed.startswith("Error [TIMEOUT] (timeout) in get_selection:")
