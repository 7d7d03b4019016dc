"""
Typed failures for the verification pipeline.

Request problems are raised before any RPC or compiler call.
Data problems (missing creation frame, bad metadata trailer) are raised
by the stage that detects them and never turned into a mismatch result.
"""

from __future__ import annotations

from typing import Optional


class BytecodeVerifyError(Exception):
    """Base class for all verification errors."""


class InvalidRequestError(BytecodeVerifyError, ValueError):
    """Verification request failed validation."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field


class ArtifactNotFoundError(BytecodeVerifyError, FileNotFoundError):
    """Compiled artifact missing from disk."""


class MetadataError(BytecodeVerifyError):
    """Compiler metadata could not be processed."""


class MetadataExtractionError(MetadataError):
    """Metadata trailer length does not fit the bytecode."""


class MalformedMetadataError(MetadataError):
    """Metadata trailer or document is not what the compiler emits."""


class UnsupportedMetadataError(MetadataError):
    """Metadata hash scheme or document size is not supported."""


class CreationNotFoundError(BytecodeVerifyError, LookupError):
    """No CREATE/CREATE2 frame in the trace deployed the address."""

    def __init__(self, address: str, message: Optional[str] = None):
        super().__init__(message or f"CREATION_NOT_FOUND {address}")
        self.address = address


class MalformedBytecodeError(BytecodeVerifyError, ValueError):
    """Bytecode is not valid hex once placeholders are neutralized."""
