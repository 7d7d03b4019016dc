"""
FastAPI verification service.

Each request is an isolated verification; only the compiled artifact
cache inside the BuildOrchestrator is shared between requests. Local
file overrides (metadata document, bytecode capture) are CLI-only.

Usage:
    uvicorn --factory bytecode_verify.api:app_from_env --host 0.0.0.0 --port 8082
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from bytecode_verify import __version__
from bytecode_verify.compare import BytecodeVerifier
from bytecode_verify.errors import (
    ArtifactNotFoundError,
    BytecodeVerifyError,
    CreationNotFoundError,
    InvalidRequestError,
    MetadataError,
)
from bytecode_verify.eth.settings import Settings

logger = logging.getLogger(__name__)


class CheckResultResponse(BaseModel):
    """One comparison, in execution order."""
    type: str
    equal: bool


class VerifyResponse(BaseModel):
    results: List[CheckResultResponse]
    verified: bool


def _status_for(exc: BytecodeVerifyError) -> int:
    if isinstance(exc, (CreationNotFoundError, ArtifactNotFoundError)):
        return 404
    if isinstance(exc, (InvalidRequestError, MetadataError)):
        return 422
    return 400


# Paths on the server filesystem; never taken from a request body
LOCAL_ONLY_FIELDS = ("metadata_file_path", "onchain_bytecode_file_path")


def _reject_local_fields(body: Dict[str, Any]) -> None:
    for name in LOCAL_ONLY_FIELDS:
        if body.get(name) is not None:
            raise InvalidRequestError(name, f"invalid {name}: not accepted by the HTTP service")


def create_app(verifier: BytecodeVerifier) -> FastAPI:
    """Build the service around a configured verifier."""
    app = FastAPI(
        title="On-chain Bytecode Verifier",
        description="Checks that deployed bytecode matches a compiled artifact",
        version=__version__,
    )

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {
            "status": "healthy",
            "version": __version__,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "metrics": verifier.metrics.snapshot(),
        }

    # Plain `def`: FastAPI runs it in a worker thread, so the blocking
    # RPC and build calls do not stall the event loop.
    @app.post("/verify", response_model=VerifyResponse)
    def verify(body: Dict[str, Any]) -> VerifyResponse:
        try:
            _reject_local_fields(body)
            results = verifier.verify(body)
        except BytecodeVerifyError as e:
            field: Optional[str] = getattr(e, "field", None)
            detail = {"error": type(e).__name__, "message": str(e)}
            if field:
                detail["field"] = field
            raise HTTPException(status_code=_status_for(e), detail=detail)
        return VerifyResponse(
            results=[CheckResultResponse(**r.to_dict()) for r in results],
            verified=all(r.equal for r in results),
        )

    return app


def app_from_env() -> FastAPI:
    """Service configured from environment variables (see Settings)."""
    settings = Settings.load()
    logger.info(f"verifier service using {settings.RPC_URL}")
    return create_app(BytecodeVerifier.from_settings(settings))
