"""
Test verification request validation.

Verifies:
- Defaults and normalization of addresses and hashes
- Field-level rejection with the offending field named
- Cross-field combination rules
- Result serialization
"""

from __future__ import annotations

import pytest
from eth_utils import to_checksum_address

from bytecode_verify.errors import InvalidRequestError
from bytecode_verify.models import (
    ArtifactType,
    BytecodeInputType,
    BytecodeVerificationType,
    CheckResult,
    DeploymentPath,
    VerificationRequest,
)
from bytecode_verify.tests.factories import LIB_ADDRESS, TOKEN_ADDRESS, TOKEN_TX

BASE = {"contract_name": "Token", "contract_address": TOKEN_ADDRESS}


def _parse(**kwargs) -> VerificationRequest:
    return VerificationRequest.parse({**BASE, **kwargs})


def _field_error(**kwargs) -> InvalidRequestError:
    with pytest.raises(InvalidRequestError) as exc_info:
        _parse(**kwargs)
    return exc_info.value


def test_defaults():
    """Partial verification of the default artifact, auto deployment path."""
    request = _parse()
    assert request.verification_type is BytecodeVerificationType.PARTIAL
    assert request.artifact_type is ArtifactType.DEFAULT
    assert request.deployment_path is DeploymentPath.AUTO
    assert request.optimizer_runs is None
    assert not request.is_library


def test_addresses_are_checksummed():
    """Lowercase input is stored checksummed."""
    request = _parse(library_name="SigLib", library_address=LIB_ADDRESS)
    assert request.contract_address.lower() == TOKEN_ADDRESS
    assert request.library_address == to_checksum_address(LIB_ADDRESS)


def test_tx_hash_is_lowercased():
    """Hashes are normalized for node lookups."""
    assert _parse(contract_creation_tx_hash=TOKEN_TX.upper().replace("0X", "0x")).contract_creation_tx_hash == TOKEN_TX


def test_parse_passes_requests_through():
    """An existing request is returned unchanged."""
    request = _parse()
    assert VerificationRequest.parse(request) is request


def test_requests_are_immutable():
    """Frozen after validation."""
    with pytest.raises(Exception):
        _parse().contract_name = "Other"


@pytest.mark.parametrize(
    "kwargs,field",
    [
        ({"contract_address": "0x1234"}, "contract_address"),
        ({"contract_name": ""}, "contract_name"),
        ({"contract_creation_tx_hash": "0xabc"}, "contract_creation_tx_hash"),
        ({"verification_type": "exact"}, "verification_type"),
        ({"artifact_type": "mainnet"}, "artifact_type"),
        ({"deployment_path": "guess"}, "deployment_path"),
        ({"optimizer_runs": 0}, "optimizer_runs"),
        ({"optimizer_runs": -1}, "optimizer_runs"),
        ({"optimizer_runs": 1.1}, "optimizer_runs"),
        ({"optimizer_runs": "1000"}, "optimizer_runs"),
        ({"optimizer_runs": "&& do something"}, "optimizer_runs"),
        ({"optimizer_runs": True}, "optimizer_runs"),
        ({"unexpected": 1}, "unexpected"),
    ],
)
def test_invalid_fields(kwargs, field):
    """Each bad field is reported by name."""
    err = _field_error(**kwargs)
    assert err.field == field
    assert field in str(err)


def test_missing_files_rejected(tmp_path):
    """Override files must exist."""
    assert _field_error(metadata_file_path=tmp_path / "missing.json").field == "metadata_file_path"
    assert _field_error(onchain_bytecode_file_path=tmp_path / "x.hex").field == "onchain_bytecode_file_path"


def test_library_name_requires_address():
    """Library name and address come as a pair."""
    assert _field_error(library_name="SigLib").field == "library_address"
    assert _field_error(library_address=LIB_ADDRESS).field == "library_address"


def test_is_library_with_alternative_artifact():
    """Pinned artifacts are never libraries."""
    assert _field_error(is_library=True, artifact_type="op_mainnet").field == "is_library"


def test_optimizer_runs_with_alternative_artifact():
    """Pinned artifacts cannot be rebuilt."""
    assert _field_error(optimizer_runs=200, artifact_type="op_mainnet").field == "optimizer_runs"


def test_trace_path_requires_tx_hash():
    """Tracing needs a transaction."""
    assert _field_error(deployment_path="trace").field == "deployment_path"


def test_check_result_to_dict():
    """Results serialize with their display label."""
    result = CheckResult(BytecodeInputType.RUNTIME_BYTECODE_PARTIAL, True)
    assert result.to_dict() == {"type": "Runtime Bytecode (partial)", "equal": True}
