"""
Bytecode comparison: does this address run this artifact?

Checks, in order, each appended to the result list:

1. Constructor code, when a creation tx hash is given
2. Runtime bytecode, partial (metadata stripped) or full (byte-exact)
3. Metadata hash, when a metadata document is given and the check is partial

A mismatch never stops later checks. A processing failure raises; it is
never reported as `equal=False`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from bytecode_verify.build import BuildOrchestrator
from bytecode_verify.errors import InvalidRequestError
from bytecode_verify.eth.chain_client import ChainClient
from bytecode_verify.eth.metrics import Metrics
from bytecode_verify.eth.settings import Settings
from bytecode_verify.metadata import (
    LENGTH_FIELD_SIZE,
    embedded_metadata_hash,
    equal_hashes,
    ipfs_metadata_hash,
    load_metadata_document,
    split_metadata,
    strip_metadata,
)
from bytecode_verify.models import (
    BytecodeInputType,
    BytecodeVerificationType,
    CheckResult,
    CompiledArtifact,
    ComparisonResult,
    LinkReference,
    VerificationRequest,
)
from bytecode_verify.normalize import (
    Linkages,
    decode_unlinked,
    find_placeholders,
    link_library,
    normalize_pair,
    partition_link_ranges,
)

logger = logging.getLogger(__name__)


def check_library_linked(artifact: CompiledArtifact, request: VerificationRequest) -> None:
    """
    A supplied library address must land in at least one placeholder.

    Raises:
        InvalidRequestError: If `library_name` matches no library of the artifact
    """
    if request.library_address is None:
        return
    for hex_code, references in (
        (artifact.creation_bytecode, artifact.creation_link_references),
        (artifact.runtime_bytecode, artifact.runtime_link_references),
    ):
        linked, _ = partition_link_ranges(references, hex_code, request.library_name)
        if linked:
            return
    known = sorted(set(artifact.creation_link_references) | set(artifact.runtime_link_references))
    if known:
        found = ", ".join(known)
    else:
        count = len(find_placeholders(artifact.runtime_bytecode))
        found = f"{count} unnamed placeholder(s)"
    raise InvalidRequestError(
        "library_name",
        f"invalid library_name: {request.library_name!r} is not linked by "
        f"{artifact.contract_name} (references: {found})",
    )


def prepare_creation(
    artifact: CompiledArtifact, request: VerificationRequest
) -> Tuple[bytes, Linkages]:
    """Linked compiled creation code; no immutables exist before the constructor runs."""
    return _prepare(artifact.creation_bytecode, artifact.creation_link_references, request)


def prepare_runtime(
    artifact: CompiledArtifact, request: VerificationRequest
) -> Tuple[bytes, Linkages]:
    return _prepare(
        artifact.runtime_bytecode,
        artifact.runtime_link_references,
        request,
        immutables=tuple(artifact.immutable_ranges()),
        is_library=request.is_library,
    )


def _prepare(
    hex_code: str,
    references: Dict[str, Tuple[LinkReference, ...]],
    request: VerificationRequest,
    *,
    immutables: Tuple[LinkReference, ...] = (),
    is_library: bool = False,
) -> Tuple[bytes, Linkages]:
    linked, unlinked = partition_link_ranges(references, hex_code, request.library_name)
    compiled = decode_unlinked(hex_code)
    if request.library_address is not None:
        compiled = link_library(compiled, linked, request.library_address)
    else:
        unlinked = linked + unlinked
    return compiled, Linkages(
        link_references=unlinked, immutable_references=immutables, is_library=is_library
    )


def runtime_trailer_range(creation: bytes, runtime: bytes) -> Optional[Tuple[int, int]]:
    """
    Byte range of the runtime's metadata trailer inside creation code.

    The runtime is located by its own bytes, so constructor arguments
    baked in after it are never taken for a trailer. None when the
    runtime has no trailer or is not embedded in the creation code.
    """
    split = split_metadata(runtime)
    if len(split.metadata) <= LENGTH_FIELD_SIZE:
        return None
    pos = creation.rfind(runtime)
    if pos >= 0:
        start = pos + len(split.code)
    else:
        start = creation.rfind(split.metadata)
        if start < 0:
            return None
    return start, start + len(split.metadata)


def compare_constructor_code(
    compiled: bytes,
    onchain: bytes,
    linkages: Linkages,
    verification_type: BytecodeVerificationType,
    *,
    runtime: bytes,
) -> bool:
    """
    On-chain creation input must start with the compiled creation code.

    Constructor arguments follow the code and are not compared. In partial
    mode the trailer of the embedded runtime (`runtime`, compiled and
    linked) is excluded.
    """
    if len(onchain) < len(compiled):
        logger.debug(f"creation input {len(onchain)}B shorter than compiled {len(compiled)}B")
        return False
    compiled_n, head_n = normalize_pair(compiled, onchain[: len(compiled)], linkages)
    if verification_type is BytecodeVerificationType.FULL:
        return compiled_n == head_n
    span = runtime_trailer_range(compiled, runtime)
    if span is None:
        logger.debug("no runtime trailer inside creation code; comparing it whole")
        return compiled_n == head_n
    start, end = span
    return compiled_n[:start] == head_n[:start] and compiled_n[end:] == head_n[end:]


def compare_runtime_code(
    compiled: bytes,
    onchain: bytes,
    linkages: Linkages,
    verification_type: BytecodeVerificationType,
) -> bool:
    if not onchain:
        logger.warning("no runtime code at address")
        return False
    compiled_n, onchain_n = normalize_pair(compiled, onchain, linkages)
    if verification_type is BytecodeVerificationType.FULL:
        return compiled_n == onchain_n
    return strip_metadata(compiled_n) == strip_metadata(onchain_n)


def compare_metadata_hash(onchain: bytes, metadata_document: str) -> bool:
    """
    Embedded IPFS hash vs the hash of the supplied metadata document.

    Raises:
        MetadataError: If either hash cannot be obtained
    """
    embedded = embedded_metadata_hash(onchain)
    expected = ipfs_metadata_hash(metadata_document)
    logger.debug(f"metadata hash onchain={embedded.hex()} document={expected.hex()}")
    return equal_hashes(embedded, expected)


@dataclass
class BytecodeVerifier:
    """
    Runs the ordered checks for a verification request.

    Usage:
        verifier = BytecodeVerifier(client, orchestrator)
        results = verifier.verify({"contract_name": "Token", "contract_address": "0x..."})
    """

    client: ChainClient
    orchestrator: BuildOrchestrator
    metrics: Metrics = field(default_factory=Metrics)

    @classmethod
    def from_settings(cls, settings: Settings) -> BytecodeVerifier:
        """Client, orchestrator and shared metrics wired from Settings."""
        metrics = Metrics()
        client = ChainClient.from_env(
            settings.RPC_URL,
            timeout_s=settings.RPC_TIMEOUT_S,
            trace_timeout=settings.TRACE_TIMEOUT,
            metrics=metrics,
        )
        orchestrator = BuildOrchestrator.from_settings(settings, metrics=metrics)
        return cls(client, orchestrator, metrics=metrics)

    def verify(self, request: Union[VerificationRequest, Mapping[str, Any]]) -> ComparisonResult:
        """
        Raises:
            InvalidRequestError: Before any RPC call
            BytecodeVerifyError: If a stage cannot process its input
        """
        request = VerificationRequest.parse(request)
        kind = request.verification_type
        logger.info(
            f"verifying {request.contract_name} at {request.contract_address} ({kind.value})"
        )

        artifact = self.orchestrator.ensure_artifact(request)
        check_library_linked(artifact, request)
        runtime, runtime_linkages = prepare_runtime(artifact, request)
        observed = self.client.observe(request)

        results: ComparisonResult = []
        if observed.creation_code is not None:
            compiled, linkages = prepare_creation(artifact, request)
            equal = compare_constructor_code(
                compiled, observed.creation_code, linkages, kind, runtime=runtime
            )
            results.append(CheckResult(BytecodeInputType.CONSTRUCTOR_CODE, equal))

        runtime_type = (
            BytecodeInputType.RUNTIME_BYTECODE_FULL
            if kind is BytecodeVerificationType.FULL
            else BytecodeInputType.RUNTIME_BYTECODE_PARTIAL
        )
        equal = compare_runtime_code(runtime, observed.runtime_code, runtime_linkages, kind)
        results.append(CheckResult(runtime_type, equal))

        if request.metadata_file_path is not None:
            if kind is BytecodeVerificationType.PARTIAL:
                document = load_metadata_document(request.metadata_file_path)
                equal = compare_metadata_hash(observed.runtime_code, document)
                results.append(CheckResult(BytecodeInputType.METADATA_HASH, equal))
            else:
                logger.warning("metadata document ignored: full verification covers the trailer")

        for r in results:
            self.metrics.record_check(r.equal)
            logger.info(f"{r.type.value}: {'match' if r.equal else 'MISMATCH'}")
        return results


def verify_on_chain_bytecode(
    request: Union[VerificationRequest, Mapping[str, Any]],
    *,
    client: ChainClient,
    orchestrator: BuildOrchestrator,
) -> ComparisonResult:
    """Run all applicable checks for `request` and return them in order."""
    return BytecodeVerifier(client, orchestrator, metrics=client.metrics).verify(request)
