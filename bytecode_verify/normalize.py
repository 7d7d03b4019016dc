"""
Library linking and placeholder/immutable normalization.

Linking writes a deployed library address into the compiled side's
placeholders, so the on-chain address is actually checked. Normalization
zeroes what neither side can be checked on (placeholders of libraries
without a supplied address, immutable slots, a library's own address)
and is applied identically to both sides.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Final, List, Optional, Tuple

from eth_utils import is_hex_address, keccak, to_bytes

from bytecode_verify.errors import MalformedBytecodeError
from bytecode_verify.models import LinkReference

ADDRESS_SIZE: Final[int] = 20
PUSH20: Final[int] = 0x73
# `__$<34 hex>$__` (solc >= 0.5) or `__<name padded with _>__` (older)
PLACEHOLDER_RE: Final = re.compile(r"__.{36}__")


def strip_0x(hex_code: str) -> str:
    h = "".join(hex_code.split())
    return h[2:] if h[:2].lower() == "0x" else h


def decode_unlinked(hex_code: str) -> bytes:
    """
    Compiler hex to bytes, library placeholders turned into zero addresses.

    Raises:
        MalformedBytecodeError: If the remainder is not valid hex
    """
    h = PLACEHOLDER_RE.sub("0" * (2 * ADDRESS_SIZE), strip_0x(hex_code))
    try:
        return bytes.fromhex(h)
    except ValueError as exc:
        raise MalformedBytecodeError(f"MALFORMED_BYTECODE {exc}") from exc


def find_placeholders(hex_code: str) -> List[Tuple[LinkReference, str]]:
    """Byte range and text of every library placeholder in compiler hex."""
    h = strip_0x(hex_code)
    return [
        (LinkReference(start=m.start() // 2, length=ADDRESS_SIZE), m.group(0))
        for m in PLACEHOLDER_RE.finditer(h)
    ]


def library_placeholder(fully_qualified_name: str) -> str:
    """Placeholder solc emits for `path/To.sol:Library`."""
    return "__$" + keccak(text=fully_qualified_name).hex()[:34] + "$__"


def _same_library(name: str, library_name: str) -> bool:
    return name == library_name or name.split(":")[-1] == library_name.split(":")[-1]


def partition_link_ranges(
    references: Dict[str, Tuple[LinkReference, ...]],
    hex_code: str,
    library_name: Optional[str] = None,
) -> Tuple[Tuple[LinkReference, ...], Tuple[LinkReference, ...]]:
    """
    Split library ranges into (linked, unlinked) for one bytecode.

    `linked` belong to `library_name`; everything else stays unlinked and
    gets neutralized. Without link references in the artifact the hex is
    scanned; placeholders are then attributed by their hash when
    `library_name` is fully qualified, and all to it otherwise.
    """
    if references:
        entries = [(name, ref) for name, refs in references.items() for ref in refs]
        if library_name is None:
            return (), tuple(ref for _, ref in entries)
        linked = tuple(ref for name, ref in entries if _same_library(name, library_name))
        unlinked = tuple(ref for name, ref in entries if not _same_library(name, library_name))
        return linked, unlinked

    found = find_placeholders(hex_code)
    if library_name is None:
        return (), tuple(ref for ref, _ in found)
    if ":" in library_name:
        expected = library_placeholder(library_name)
        return (
            tuple(ref for ref, text in found if text == expected),
            tuple(ref for ref, text in found if text != expected),
        )
    return tuple(ref for ref, _ in found), ()


def _write(buf: bytearray, ref: LinkReference, value: bytes) -> None:
    # Clip ranges that run past the end; a short side simply won't compare equal
    end = min(ref.end, len(buf))
    if ref.start >= end:
        return
    buf[ref.start:end] = value[: end - ref.start]


def _fill(value: bytes, length: int) -> bytes:
    return value[:length].ljust(length, b"\x00")


def link_library(bytecode: bytes, ranges: Tuple[LinkReference, ...], address: str) -> bytes:
    """
    Write a deployed library address into the compiled side's placeholders.

    Raises:
        ValueError: If address is malformed
    """
    if not is_hex_address(address):
        raise ValueError(f"Invalid library address: {address}")
    value = to_bytes(hexstr=address)
    out = bytearray(bytecode)
    for ref in ranges:
        _write(out, ref, _fill(value, ref.length))
    return bytes(out)


@dataclass(frozen=True)
class Linkages:
    """
    What to neutralize in a bytecode.

    Attributes:
        link_references: Placeholder ranges of libraries with no supplied address
        immutable_references: Ranges written at deploy time
        is_library: Bytecode belongs to a library (PUSH20 <self address> prefix)
    """

    link_references: Tuple[LinkReference, ...] = ()
    immutable_references: Tuple[LinkReference, ...] = ()
    is_library: bool = False


def normalize(bytecode: bytes, linkages: Linkages) -> bytes:
    """
    Canonical form of a bytecode: unlinked libraries and immutables zeroed.

    Length-preserving and idempotent.
    """
    out = bytearray(bytecode)
    for ref in linkages.link_references + linkages.immutable_references:
        _write(out, ref, bytes(ref.length))
    if linkages.is_library and out[:1] == bytes([PUSH20]):
        _write(out, LinkReference(start=1, length=ADDRESS_SIZE), bytes(ADDRESS_SIZE))
    return bytes(out)


def normalize_pair(
    compiled: bytes, onchain: bytes, linkages: Linkages
) -> Tuple[bytes, bytes]:
    """Normalize both sides of a comparison identically."""
    return normalize(compiled, linkages), normalize(onchain, linkages)
