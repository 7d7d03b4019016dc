"""
Compiled artifact loading.

Reads Foundry artifacts (`out/<Name>.sol/<Name>.json`) and, for
deployments a standard build cannot reproduce, pinned alternative
artifacts (`<alternative_dir>/<artifact_type>/<Name>.json`, same format).
Hardhat-style artifacts (flat `bytecode` / `deployedBytecode` strings)
are accepted too.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Tuple

from bytecode_verify.errors import ArtifactNotFoundError, MalformedBytecodeError
from bytecode_verify.models import ArtifactType, CompiledArtifact, LinkReference

logger = logging.getLogger(__name__)


def _ranges(entries: Any) -> Tuple[LinkReference, ...]:
    return tuple(LinkReference(start=int(e["start"]), length=int(e["length"])) for e in entries or ())


def _link_references(obj: Mapping) -> Dict[str, Tuple[LinkReference, ...]]:
    """`{source: {library: [range]}}` flattened to `{"source:library": ranges}`."""
    out: Dict[str, Tuple[LinkReference, ...]] = {}
    for source, libraries in (obj or {}).items():
        for library, entries in libraries.items():
            out[f"{source}:{library}"] = _ranges(entries)
    return out


def _immutable_references(obj: Mapping) -> Dict[str, Tuple[LinkReference, ...]]:
    return {str(ast_id): _ranges(entries) for ast_id, entries in (obj or {}).items()}


def parse_artifact(contract_name: str, doc: Mapping) -> CompiledArtifact:
    """
    Build a CompiledArtifact from a Foundry or Hardhat artifact document.

    Raises:
        MalformedBytecodeError: If bytecode fields are missing
    """
    creation = doc.get("bytecode")
    runtime = doc.get("deployedBytecode")
    if isinstance(creation, Mapping) and isinstance(runtime, Mapping):
        # Foundry
        creation_hex = creation.get("object")
        runtime_hex = runtime.get("object")
        creation_links = _link_references(creation.get("linkReferences"))
        runtime_links = _link_references(runtime.get("linkReferences"))
        immutables = _immutable_references(runtime.get("immutableReferences"))
    else:
        # Hardhat
        creation_hex = creation
        runtime_hex = runtime
        creation_links = _link_references(doc.get("linkReferences"))
        runtime_links = _link_references(doc.get("deployedLinkReferences"))
        immutables = _immutable_references(doc.get("immutableReferences"))

    if not isinstance(creation_hex, str) or not isinstance(runtime_hex, str):
        raise MalformedBytecodeError(f"MALFORMED_ARTIFACT {contract_name}: missing bytecode")

    raw_metadata = doc.get("rawMetadata")
    if raw_metadata is None and isinstance(doc.get("metadata"), str):
        raw_metadata = doc["metadata"]

    return CompiledArtifact(
        contract_name=contract_name,
        creation_bytecode=creation_hex,
        runtime_bytecode=runtime_hex,
        creation_link_references=creation_links,
        runtime_link_references=runtime_links,
        immutable_references=immutables,
        raw_metadata=raw_metadata,
    )


@dataclass(frozen=True)
class ArtifactStore:
    """Locates and parses artifacts on disk."""

    artifacts_dir: Path
    alternative_dir: Path
    build_tool: str = "forge"

    def path_for(self, contract_name: str, artifact_type: ArtifactType = ArtifactType.DEFAULT) -> Path:
        if artifact_type is ArtifactType.DEFAULT:
            return self.artifacts_dir / f"{contract_name}.sol" / f"{contract_name}.json"
        return self.alternative_dir / artifact_type.value / f"{contract_name}.json"

    def load(self, contract_name: str, artifact_type: ArtifactType = ArtifactType.DEFAULT) -> CompiledArtifact:
        """
        Raises:
            ArtifactNotFoundError: If the artifact file does not exist
        """
        path = self.path_for(contract_name, artifact_type)
        if not path.exists():
            hint = (
                f"Run: {self.build_tool} build"
                if artifact_type is ArtifactType.DEFAULT
                else f"No pinned {artifact_type.value} artifact for {contract_name}"
            )
            raise ArtifactNotFoundError(f"Contract artifact not found: {path}\n{hint}")
        logger.info(f"loading {artifact_type.value} artifact {path}")
        return parse_artifact(contract_name, json.loads(path.read_text(encoding="utf-8")))
