"""
Creation bytecode recovery from geth `callTracer` output.

Used when the contract was deployed by an internal CREATE/CREATE2
(factories, upgraders) and the transaction input is not its initcode.

The trace is flattened into an immutable arena of frames indexed in
pre-order; children keep their recorded order, so "first match in
pre-order" is reproducible.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, FrozenSet, Iterator, List, Optional, Tuple, Union

from eth_utils import is_hex_address

from bytecode_verify.errors import CreationNotFoundError, MalformedBytecodeError

CREATE_CALL_TYPES: FrozenSet[str] = frozenset({"CREATE", "CREATE2"})


@dataclass(frozen=True)
class TraceFrame:
    """One call frame of the trace."""

    index: int
    parent: Optional[int]
    children: Tuple[int, ...]
    call_type: str
    from_address: Optional[str]
    to_address: Optional[str]  # created address for CREATE/CREATE2
    input: Optional[str]
    error: Optional[str] = None

    @property
    def creates_contract(self) -> bool:
        return self.call_type in CREATE_CALL_TYPES

    @property
    def succeeded(self) -> bool:
        return self.error is None


def _lower(addr: Any) -> Optional[str]:
    return addr.lower() if isinstance(addr, str) else None


@dataclass(frozen=True)
class DeploymentTrace:
    """Immutable call tree; `frames[0]` is the top-level call."""

    frames: Tuple[TraceFrame, ...]

    @classmethod
    def from_call_tracer(cls, obj: Mapping) -> "DeploymentTrace":
        """
        Build from a `callTracer` result.

        Accepts the bare result or a JSON-RPC envelope with `result`.

        Raises:
            MalformedBytecodeError: If a frame is not a mapping
        """
        root = obj.get("result") if isinstance(obj.get("result"), Mapping) else obj

        raw: List[dict] = []
        stack: List[Tuple[Any, Optional[int]]] = [(root, None)]
        while stack:
            node, parent = stack.pop()
            if not isinstance(node, Mapping):
                raise MalformedBytecodeError(f"MALFORMED_TRACE frame is {type(node).__name__}")
            index = len(raw)
            raw.append(
                {
                    "index": index,
                    "parent": parent,
                    "children": [],
                    "call_type": str(node.get("type") or "CALL").upper(),
                    "from_address": _lower(node.get("from")),
                    "to_address": _lower(node.get("to")),
                    "input": node.get("input"),
                    "error": node.get("error"),
                }
            )
            if parent is not None:
                raw[parent]["children"].append(index)
            # Reversed so the first recorded child is popped (and indexed) first
            for child in reversed(list(node.get("calls") or [])):
                stack.append((child, index))

        frames = tuple(
            TraceFrame(**{**r, "children": tuple(r["children"])}) for r in raw
        )
        return cls(frames=frames)

    def walk(self) -> Iterator[TraceFrame]:
        """Pre-order traversal, children in recorded order."""
        if not self.frames:
            return
        stack = [0]
        while stack:
            frame = self.frames[stack.pop()]
            yield frame
            stack.extend(reversed(frame.children))

    def creations(self) -> Iterator[TraceFrame]:
        """Contract-creating frames in traversal order."""
        return (f for f in self.walk() if f.creates_contract)


def extract_bytecode_from_geth_traces(
    trace: Union[DeploymentTrace, Mapping], address: str
) -> str:
    """
    Initcode of the frame that created `address`.

    Reverted creations are skipped. If the address was created more than
    once in the trace (CREATE2, SELFDESTRUCT, redeploy), the first frame
    in pre-order wins.

    Raises:
        ValueError: If address is malformed
        CreationNotFoundError: If no creation frame matches
        MalformedBytecodeError: If the matching frame carries no initcode
    """
    if not is_hex_address(address):
        raise ValueError(f"Invalid address: {address}")
    if not isinstance(trace, DeploymentTrace):
        trace = DeploymentTrace.from_call_tracer(trace)

    target = address.lower()
    for frame in trace.creations():
        if frame.succeeded and frame.to_address == target:
            if not isinstance(frame.input, str) or frame.input.lower() in ("", "0x"):
                raise MalformedBytecodeError(
                    f"MALFORMED_TRACE creation frame {frame.index} for {address} has no input"
                )
            return frame.input
    raise CreationNotFoundError(address)
