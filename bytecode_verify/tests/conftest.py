"""Fixtures wiring the synthetic contract into a fake chain and artifact store."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from bytecode_verify.artifacts import ArtifactStore
from bytecode_verify.build import BuildOrchestrator
from bytecode_verify.compare import BytecodeVerifier
from bytecode_verify.eth.chain_client import ChainClient
from bytecode_verify.eth.metrics import Metrics
from bytecode_verify.tests.factories import (
    CTOR_ARGS,
    FACTORY_ADDRESS,
    FACTORY_TX,
    METADATA,
    OTHER_ADDRESS,
    OTHER_TX,
    PROXY_ADDRESS,
    TOKEN_ADDRESS,
    TOKEN_TX,
    FakeWeb3,
    RecordingRunner,
    deployed_creation,
    deployed_runtime,
    foundry_artifact,
    proxy_trace,
    runtime_body,
    trailer,
    write_artifact,
)


@pytest.fixture
def fake_w3() -> FakeWeb3:
    """A chain where Token (linked), Other and a factory-made proxy are deployed."""
    return FakeWeb3(
        codes={
            TOKEN_ADDRESS: deployed_runtime(),
            OTHER_ADDRESS: deployed_runtime(tail="5a5b5b00"),
            PROXY_ADDRESS: runtime_body(tail="fe") + trailer(),
        },
        txs={
            TOKEN_TX: {"to": None, "input": deployed_creation()},
            OTHER_TX: {"to": None, "input": deployed_creation(tail="5a5b5b00")},
            FACTORY_TX: {"to": FACTORY_ADDRESS, "input": bytes.fromhex("deadbeef")},
        },
        receipts={
            TOKEN_TX: {"contractAddress": TOKEN_ADDRESS},
            OTHER_TX: {"contractAddress": OTHER_ADDRESS},
            FACTORY_TX: {"contractAddress": None},
        },
        traces={FACTORY_TX: proxy_trace()},
    )


@pytest.fixture
def metrics() -> Metrics:
    return Metrics()


@pytest.fixture
def client(fake_w3, metrics) -> ChainClient:
    return ChainClient(w3=fake_w3, metrics=metrics)


@pytest.fixture
def runner() -> RecordingRunner:
    return RecordingRunner()


@pytest.fixture
def store(tmp_path) -> ArtifactStore:
    out = tmp_path / "out"
    alt = tmp_path / "alternative"
    write_artifact(out, "Token", foundry_artifact())
    # Pinned proxy artifact: initcode with constructor arguments baked in
    proxy = foundry_artifact(tail="fe", linked=False)
    proxy["bytecode"]["object"] += CTOR_ARGS.hex()
    proxy_path = alt / "op_mainnet" / "Proxy.json"
    proxy_path.parent.mkdir(parents=True)
    proxy_path.write_text(json.dumps(proxy), encoding="utf-8")
    return ArtifactStore(artifacts_dir=out, alternative_dir=alt)


@pytest.fixture
def orchestrator(store, runner, metrics) -> BuildOrchestrator:
    return BuildOrchestrator(store, runner, metrics=metrics)


@pytest.fixture
def verifier(client, orchestrator, metrics) -> BytecodeVerifier:
    return BytecodeVerifier(client, orchestrator, metrics=metrics)


@pytest.fixture
def metadata_file(tmp_path) -> Path:
    path = tmp_path / "Token.metadata.json"
    path.write_text(METADATA, encoding="utf-8")
    return path
