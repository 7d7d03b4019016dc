from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from eth_utils import is_hex_address, to_checksum_address
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic_core import PydanticCustomError

from bytecode_verify.errors import InvalidRequestError

_TX_HASH_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")


class BytecodeVerificationType(str, Enum):
    """
    Granularity of the runtime bytecode comparison.

    - PARTIAL: compiler metadata trailer stripped from both sides
    - FULL: byte-exact, trailer included
    """
    PARTIAL = "partial"
    FULL = "full"


class BytecodeInputType(str, Enum):
    """Which comparison a result entry reports."""
    CONSTRUCTOR_CODE = "Constructor Code"
    RUNTIME_BYTECODE_PARTIAL = "Runtime Bytecode (partial)"
    RUNTIME_BYTECODE_FULL = "Runtime Bytecode (full)"
    METADATA_HASH = "Metadata Hash"


class ArtifactType(str, Enum):
    """
    Artifact source for the compiled side.

    DEFAULT is the project's own build output. The others are pinned
    artifacts for deployments a standard build cannot reproduce
    (e.g. a factory that bakes constructor arguments into the initcode).
    """
    DEFAULT = "default"
    OP_MAINNET = "op_mainnet"


class DeploymentPath(str, Enum):
    """How creation bytecode is recovered from a creation transaction."""
    AUTO = "auto"  # tx input for plain creations, trace otherwise
    DIRECT = "direct"
    TRACE = "trace"


def _combination_error(field_name: str, message: str) -> PydanticCustomError:
    return PydanticCustomError(
        "invalid_combination", "{message}", {"field": field_name, "message": message}
    )


class VerificationRequest(BaseModel):
    """
    One verification call: which contract, where it lives, how strictly to compare.

    Immutable once built. Every field and combination is checked here so
    that nothing reaches the compiler or the RPC node unvalidated.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    contract_name: str = Field(min_length=1)
    contract_address: str
    verification_type: BytecodeVerificationType = BytecodeVerificationType.PARTIAL

    # Library linkage (the contract under test links against a deployed library)
    library_name: Optional[str] = None
    library_address: Optional[str] = None
    # The contract under test is itself a library
    is_library: bool = False

    contract_creation_tx_hash: Optional[str] = None
    deployment_path: DeploymentPath = DeploymentPath.AUTO

    # Local overrides
    onchain_bytecode_file_path: Optional[Path] = None
    metadata_file_path: Optional[Path] = None

    artifact_type: ArtifactType = ArtifactType.DEFAULT
    optimizer_runs: Optional[int] = Field(default=None, gt=0, strict=True)

    @field_validator("contract_address", "library_address")
    @classmethod
    def _address(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        if not is_hex_address(v):
            raise ValueError("expected 0x-prefixed 20-byte hex address")
        return to_checksum_address(v)

    @field_validator("contract_creation_tx_hash")
    @classmethod
    def _tx_hash(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        if not _TX_HASH_RE.match(v):
            raise ValueError("expected 0x-prefixed 32-byte hex hash")
        return v.lower()

    @field_validator("onchain_bytecode_file_path", "metadata_file_path")
    @classmethod
    def _existing_file(cls, v: Optional[Path]) -> Optional[Path]:
        if v is not None and not v.is_file():
            raise ValueError(f"file not found: {v}")
        return v

    @model_validator(mode="after")
    def _combinations(self) -> "VerificationRequest":
        if (self.library_name is None) != (self.library_address is None):
            raise _combination_error(
                "library_address", "library_name and library_address must be given together"
            )
        if self.is_library and self.artifact_type is not ArtifactType.DEFAULT:
            raise _combination_error(
                "is_library", "is_library cannot be used with an alternative artifact"
            )
        if self.optimizer_runs is not None and self.artifact_type is not ArtifactType.DEFAULT:
            raise _combination_error(
                "optimizer_runs", "alternative artifacts are pinned and cannot be rebuilt"
            )
        if self.deployment_path is DeploymentPath.TRACE and not self.contract_creation_tx_hash:
            raise _combination_error(
                "deployment_path", "trace deployment path requires contract_creation_tx_hash"
            )
        return self

    @classmethod
    def parse(cls, data: Union["VerificationRequest", Mapping[str, Any]]) -> "VerificationRequest":
        """
        Build a request from a mapping, converting pydantic errors.

        Raises:
            InvalidRequestError: naming the first offending field
        """
        if isinstance(data, cls):
            return data
        try:
            return cls.model_validate(dict(data))
        except ValidationError as exc:
            err = exc.errors()[0]
            ctx = err.get("ctx") or {}
            name = ctx.get("field") or ".".join(str(p) for p in err["loc"]) or "request"
            raise InvalidRequestError(name, f"invalid {name}: {err['msg']}") from exc


@dataclass(frozen=True)
class LinkReference:
    """Byte range inside a bytecode blob."""

    start: int
    length: int

    @property
    def end(self) -> int:
        return self.start + self.length


@dataclass(frozen=True)
class CompiledArtifact:
    """
    Compiler output for one contract.

    Bytecode is kept as emitted (hex, may contain `__$...$__` library
    placeholders). Reference maps are keyed by library name / immutable AST id.
    """

    contract_name: str
    creation_bytecode: str
    runtime_bytecode: str
    creation_link_references: Dict[str, Tuple[LinkReference, ...]] = field(default_factory=dict)
    runtime_link_references: Dict[str, Tuple[LinkReference, ...]] = field(default_factory=dict)
    immutable_references: Dict[str, Tuple[LinkReference, ...]] = field(default_factory=dict)
    raw_metadata: Optional[str] = None

    def immutable_ranges(self) -> List[LinkReference]:
        return [ref for refs in self.immutable_references.values() for ref in refs]


@dataclass(frozen=True)
class CheckResult:
    """One entry of the ordered comparison result."""

    type: BytecodeInputType
    equal: bool

    def to_dict(self) -> dict:
        return {"type": self.type.value, "equal": self.equal}


ComparisonResult = List[CheckResult]
