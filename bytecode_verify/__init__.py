"""
On-chain bytecode verification.

Proves that the code at an address was produced by a given compiled
artifact: constructor code, runtime code (partial or full) and the
embedded compiler metadata hash.
"""

from bytecode_verify.compare import BytecodeVerifier, verify_on_chain_bytecode
from bytecode_verify.errors import (
    ArtifactNotFoundError,
    BytecodeVerifyError,
    CreationNotFoundError,
    InvalidRequestError,
    MetadataError,
)
from bytecode_verify.models import (
    ArtifactType,
    BytecodeInputType,
    BytecodeVerificationType,
    CheckResult,
    DeploymentPath,
    VerificationRequest,
)
from bytecode_verify.traces import extract_bytecode_from_geth_traces

__version__ = "0.1.0"

__all__ = [
    "ArtifactNotFoundError",
    "ArtifactType",
    "BytecodeInputType",
    "BytecodeVerificationType",
    "BytecodeVerifier",
    "BytecodeVerifyError",
    "CheckResult",
    "CreationNotFoundError",
    "DeploymentPath",
    "InvalidRequestError",
    "MetadataError",
    "VerificationRequest",
    "extract_bytecode_from_geth_traces",
    "verify_on_chain_bytecode",
]
