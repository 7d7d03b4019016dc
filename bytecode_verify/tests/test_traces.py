"""
Test creation bytecode recovery from callTracer output.

Verifies:
- Nested CREATE2 frames are found at any depth
- First pre-order match wins when an address is created twice
- Reverted creations are skipped
- Unknown addresses raise CreationNotFoundError
- JSON-RPC envelopes and malformed frames
"""

from __future__ import annotations

import pytest

from bytecode_verify.errors import CreationNotFoundError, MalformedBytecodeError
from bytecode_verify.traces import DeploymentTrace, extract_bytecode_from_geth_traces
from bytecode_verify.tests.factories import FACTORY_ADDRESS, OTHER_ADDRESS, PROXY_ADDRESS, proxy_trace

TARGET = "0x" + "55" * 20


def _create(to, input_, *, call_type="CREATE", error=None, calls=None):
    frame = {"type": call_type, "from": FACTORY_ADDRESS, "to": to, "input": input_}
    if error:
        frame["error"] = error
    if calls:
        frame["calls"] = calls
    return frame


def _root(*calls):
    return {"type": "CALL", "from": OTHER_ADDRESS, "to": FACTORY_ADDRESS, "input": "0x", "calls": list(calls)}


def test_nested_create2_found():
    """The proxy is created two levels below the top-level call."""
    input_ = extract_bytecode_from_geth_traces(proxy_trace(), PROXY_ADDRESS)
    assert input_ == proxy_trace()["calls"][1]["calls"][0]["input"]


def test_address_match_is_case_insensitive():
    """Checksummed and lowercase addresses match the same frame."""
    upper = "0x" + PROXY_ADDRESS[2:].upper()
    assert extract_bytecode_from_geth_traces(proxy_trace(), upper).startswith("0x6080")


def test_first_preorder_match_wins():
    """A deeper earlier frame beats a shallower later one."""
    trace = _root(
        _create(OTHER_ADDRESS, "0x00", call_type="CALL", calls=[_create(TARGET, "0xaa")]),
        _create(TARGET, "0xbb"),
    )
    assert extract_bytecode_from_geth_traces(trace, TARGET) == "0xaa"


def test_reverted_creation_skipped():
    """A failed CREATE2 to the same address does not count."""
    trace = _root(
        _create(TARGET, "0xaa", call_type="CREATE2", error="execution reverted"),
        _create(TARGET, "0xbb", call_type="CREATE2"),
    )
    assert extract_bytecode_from_geth_traces(trace, TARGET) == "0xbb"


def test_calls_to_address_are_not_creations():
    """A CALL into the address is not its deployment."""
    trace = _root({"type": "CALL", "from": FACTORY_ADDRESS, "to": TARGET, "input": "0xcc"})
    with pytest.raises(CreationNotFoundError, match="CREATION_NOT_FOUND"):
        extract_bytecode_from_geth_traces(trace, TARGET)


def test_top_level_create():
    """A plain deployment traced as a CREATE root frame."""
    trace = _create(TARGET, "0x6080")
    assert extract_bytecode_from_geth_traces(trace, TARGET) == "0x6080"


def test_unknown_address_raises():
    """Missing creations surface as errors."""
    with pytest.raises(CreationNotFoundError) as exc_info:
        extract_bytecode_from_geth_traces(proxy_trace(), TARGET)
    assert exc_info.value.address == TARGET


def test_invalid_address_rejected():
    """Malformed addresses are refused before walking."""
    with pytest.raises(ValueError):
        extract_bytecode_from_geth_traces(proxy_trace(), "0x1234")


def test_envelope_accepted():
    """Raw JSON-RPC responses carry the trace under `result`."""
    envelope = {"jsonrpc": "2.0", "id": 1, "result": proxy_trace()}
    assert extract_bytecode_from_geth_traces(envelope, PROXY_ADDRESS).startswith("0x")


def test_arena_preorder_indices():
    """Frames are indexed in pre-order with parent/child links."""
    trace = DeploymentTrace.from_call_tracer(proxy_trace())
    assert [f.index for f in trace.walk()] == [0, 1, 2, 3]
    assert trace.frames[0].children == (1, 2)
    assert trace.frames[3].parent == 2
    assert [f.call_type for f in trace.creations()] == ["CREATE2"]


def test_deep_trace_does_not_recurse():
    """Traces deeper than the recursion limit are walked iteratively."""
    node = _create(TARGET, "0xdd")
    for _ in range(5000):
        node = {"type": "CALL", "from": FACTORY_ADDRESS, "to": OTHER_ADDRESS, "input": "0x", "calls": [node]}
    assert extract_bytecode_from_geth_traces(node, TARGET) == "0xdd"


def test_malformed_frame_rejected():
    """Frames must be JSON objects."""
    with pytest.raises(MalformedBytecodeError, match="MALFORMED_TRACE"):
        DeploymentTrace.from_call_tracer(_root("not a frame"))


@pytest.mark.parametrize("frame_input", [None, "0x", ""])
def test_creation_without_input_rejected(frame_input):
    """A matching creation frame must carry initcode."""
    frame = {"type": "CREATE", "from": FACTORY_ADDRESS, "to": TARGET}
    if frame_input is not None:
        frame["input"] = frame_input
    with pytest.raises(MalformedBytecodeError, match="has no input"):
        extract_bytecode_from_geth_traces(frame, TARGET)
