"""
Compiler metadata trailer codec.

Solidity appends a CBOR map to runtime bytecode, followed by its length
as a 2-byte big-endian integer:

    runtime || cbor({"ipfs": <multihash>, "solc": <version>, ...}) || len(cbor)

The trailer is never executed but is part of the on-chain code, so a
"partial" comparison strips it and a separate check compares the
embedded metadata hash with the metadata document.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Final, Union

import cbor2
from eth_utils import keccak

from bytecode_verify.errors import (
    MalformedMetadataError,
    MetadataExtractionError,
    UnsupportedMetadataError,
)

logger = logging.getLogger(__name__)

LENGTH_FIELD_SIZE: Final[int] = 2
# Default UnixFS chunk size; larger documents become multi-block DAGs
IPFS_CHUNK_SIZE: Final[int] = 262144
SWARM_KEYS: Final[tuple] = ("bzzr0", "bzzr1")


@dataclass(frozen=True)
class MetadataSplit:
    """
    Runtime bytecode cut at the metadata trailer.

    `code + metadata` is exactly the input bytecode; `metadata` includes
    the length field.
    """

    code: bytes
    metadata: bytes
    metadata_hash: bytes


def split_metadata(bytecode: bytes) -> MetadataSplit:
    """
    Split bytecode into code and metadata trailer.

    Raises:
        MetadataExtractionError: If the length field does not fit the bytecode
    """
    if len(bytecode) < LENGTH_FIELD_SIZE:
        raise MetadataExtractionError(
            f"METADATA_EXTRACTION_FAILED bytecode too short ({len(bytecode)} bytes)"
        )
    cbor_len = int.from_bytes(bytecode[-LENGTH_FIELD_SIZE:], "big")
    trailer_len = cbor_len + LENGTH_FIELD_SIZE
    if trailer_len > len(bytecode):
        raise MetadataExtractionError(
            f"METADATA_EXTRACTION_FAILED trailer length {trailer_len} "
            f"exceeds bytecode length {len(bytecode)}"
        )
    cut = len(bytecode) - trailer_len
    metadata = bytecode[cut:]
    logger.debug(f"metadata trailer: {trailer_len} bytes at offset {cut}")
    return MetadataSplit(code=bytecode[:cut], metadata=metadata, metadata_hash=keccak(metadata))


def strip_metadata(bytecode: bytes) -> bytes:
    """Bytecode without its metadata trailer."""
    return split_metadata(bytecode).code


def decode_metadata(bytecode: bytes) -> Dict[str, Any]:
    """
    CBOR-decode the metadata trailer of a runtime bytecode.

    Raises:
        MetadataExtractionError: If the trailer cannot be delimited
        MalformedMetadataError: If the trailer is not a CBOR map
    """
    trailer = split_metadata(bytecode).metadata[:-LENGTH_FIELD_SIZE]
    try:
        decoded = cbor2.loads(trailer)
    except (cbor2.CBORDecodeError, ValueError) as exc:
        raise MalformedMetadataError(f"MALFORMED_METADATA invalid CBOR: {exc}") from exc
    if not isinstance(decoded, dict):
        raise MalformedMetadataError(
            f"MALFORMED_METADATA expected CBOR map, got {type(decoded).__name__}"
        )
    return decoded


def embedded_metadata_hash(bytecode: bytes) -> bytes:
    """
    IPFS multihash embedded by the compiler.

    Raises:
        UnsupportedMetadataError: For Swarm (bzzr0/bzzr1) hashes
        MalformedMetadataError: If no metadata hash is present
    """
    decoded = decode_metadata(bytecode)
    ipfs = decoded.get("ipfs")
    if isinstance(ipfs, bytes):
        return ipfs
    for key in SWARM_KEYS:
        if key in decoded:
            raise UnsupportedMetadataError(f"UNSUPPORTED_METADATA swarm hash ({key})")
    raise MalformedMetadataError("MALFORMED_METADATA no ipfs hash in trailer")


def _varint(n: int) -> bytes:
    out = bytearray()
    while True:
        b = n & 0x7F
        n >>= 7
        if n:
            out.append(b | 0x80)
        else:
            out.append(b)
            return bytes(out)


def ipfs_metadata_hash(metadata: Union[str, bytes]) -> bytes:
    """
    CIDv0 multihash of a metadata document, as solc computes it.

    The document is a single UnixFS file node wrapped in a dag-pb node;
    the multihash is 0x12 0x20 || sha256(node).

    Raises:
        UnsupportedMetadataError: If the document spans more than one chunk
    """
    content = metadata.encode("utf-8") if isinstance(metadata, str) else metadata
    if len(content) > IPFS_CHUNK_SIZE:
        raise UnsupportedMetadataError(
            f"UNSUPPORTED_METADATA document of {len(content)} bytes exceeds one IPFS chunk"
        )
    unixfs = b"\x08\x02"  # Type = File
    if content:
        unixfs += b"\x12" + _varint(len(content)) + content
    unixfs += b"\x18" + _varint(len(content))
    node = b"\x0a" + _varint(len(unixfs)) + unixfs
    return b"\x12\x20" + hashlib.sha256(node).digest()


def load_metadata_document(path: Union[str, Path]) -> str:
    """
    Read a compiler metadata document.

    Accepts the raw metadata JSON the compiler emits, a JSON object
    carrying it as a string under `metadata`, or a Foundry artifact
    (`rawMetadata`).

    Raises:
        MalformedMetadataError: If a `metadata` field is present but not a string
    """
    text = Path(path).read_text(encoding="utf-8")
    try:
        doc = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedMetadataError(f"MALFORMED_METADATA {path}: {exc}") from exc
    if isinstance(doc, dict) and isinstance(doc.get("rawMetadata"), str):
        return doc["rawMetadata"]
    if isinstance(doc, dict) and "metadata" in doc:
        inner = doc["metadata"]
        if not isinstance(inner, str):
            raise MalformedMetadataError(
                f"MALFORMED_METADATA {path}: 'metadata' field must be a string"
            )
        return inner
    # Hashed byte-for-byte; trailing newlines from editors would change it
    return text


def equal_hashes(a: bytes, b: bytes) -> bool:
    """Byte-exact hash comparison."""
    return bytes(a) == bytes(b)
