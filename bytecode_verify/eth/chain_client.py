"""
On-chain side of a verification.

Provides:
- Runtime bytecode (eth_getCode, or a local capture file)
- Creation bytecode from the deploying transaction's input
- Creation bytecode from a callTracer trace for internal deployments
- RPC latency/error metrics

RPC failures propagate unchanged; there is no retry here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

from eth_utils import to_bytes
from web3 import Web3

from bytecode_verify.errors import MalformedBytecodeError
from bytecode_verify.eth.metrics import Metrics
from bytecode_verify.models import DeploymentPath, VerificationRequest
from bytecode_verify.traces import DeploymentTrace, extract_bytecode_from_geth_traces

logger = logging.getLogger(__name__)


def _as_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        try:
            return to_bytes(hexstr=value)
        except ValueError as exc:
            raise MalformedBytecodeError(f"MALFORMED_BYTECODE {exc}") from exc
    raise MalformedBytecodeError(f"MALFORMED_BYTECODE unexpected {type(value).__name__}")


def read_bytecode_file(path: Union[str, Path]) -> bytes:
    """
    Read a hex bytecode capture, used verbatim in place of eth_getCode.

    Whitespace and an optional 0x prefix are ignored.

    Raises:
        MalformedBytecodeError: If the file is not hex
    """
    text = "".join(Path(path).read_text(encoding="utf-8").split())
    if text[:2].lower() == "0x":
        text = text[2:]
    try:
        return bytes.fromhex(text)
    except ValueError as exc:
        raise MalformedBytecodeError(f"MALFORMED_BYTECODE {path}: {exc}") from exc


@dataclass(frozen=True)
class OnChainObservation:
    """What the chain says about the contract under verification."""

    runtime_code: bytes
    creation_code: Optional[bytes] = None


@dataclass
class ChainClient:
    """
    Read-only chain access for bytecode verification.

    `w3` only needs `eth.get_code`, `eth.get_transaction`,
    `eth.get_transaction_receipt` and `manager.request_blocking`.
    """

    w3: Web3
    metrics: Metrics = field(default_factory=Metrics)
    trace_timeout: str = ""

    @staticmethod
    def from_env(
        rpc_url: str,
        *,
        timeout_s: int = 30,
        trace_timeout: str = "",
        metrics: Optional[Metrics] = None,
    ) -> ChainClient:
        """
        Create client for an HTTP JSON-RPC endpoint.

        Args:
            rpc_url: Node endpoint; tracing requires the debug namespace
            timeout_s: HTTP timeout per call
            trace_timeout: geth tracer timeout (e.g. "60s"), node default if empty
            metrics: Optional shared metrics instance
        """
        w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout_s}))
        return ChainClient(w3=w3, metrics=metrics or Metrics(), trace_timeout=trace_timeout)

    def get_runtime_code(self, address: str) -> bytes:
        with self.metrics.timed("rpc_latency_ms", "rpc_errors_total"):
            code = self.w3.eth.get_code(Web3.to_checksum_address(address))
        return bytes(code)

    def get_transaction(self, tx_hash: str) -> Any:
        with self.metrics.timed("rpc_latency_ms", "rpc_errors_total"):
            return self.w3.eth.get_transaction(tx_hash)

    def get_receipt(self, tx_hash: str) -> Any:
        with self.metrics.timed("rpc_latency_ms", "rpc_errors_total"):
            return self.w3.eth.get_transaction_receipt(tx_hash)

    def get_creation_input(self, tx_hash: str) -> bytes:
        """Input data of the transaction (initcode + constructor args for plain creations)."""
        return _as_bytes(self.get_transaction(tx_hash)["input"])

    def get_trace(self, tx_hash: str) -> DeploymentTrace:
        """
        Replay the transaction with geth's callTracer.

        Raises:
            Exception: If the node has no debug namespace or the call fails
        """
        tracer: dict = {"tracer": "callTracer"}
        if self.trace_timeout:
            tracer["timeout"] = self.trace_timeout
        with self.metrics.timed("trace_latency_ms", "rpc_errors_total"):
            raw = self.w3.manager.request_blocking("debug_traceTransaction", [tx_hash, tracer])
        return DeploymentTrace.from_call_tracer(raw)

    def get_creation_from_trace(self, tx_hash: str, address: str) -> bytes:
        """
        Raises:
            CreationNotFoundError: If the transaction never created `address`
        """
        return _as_bytes(extract_bytecode_from_geth_traces(self.get_trace(tx_hash), address))

    def resolve_creation_bytecode(
        self, tx_hash: str, address: str, path: DeploymentPath = DeploymentPath.AUTO
    ) -> bytes:
        """
        Creation bytecode of `address` as executed by `tx_hash`.

        DIRECT reads the tx input, TRACE walks the trace. AUTO reads the tx
        input when the transaction is a plain contract creation (no `to`)
        and walks the trace for internal deployments.
        """
        if path is DeploymentPath.DIRECT:
            return self.get_creation_input(tx_hash)
        if path is DeploymentPath.TRACE:
            return self.get_creation_from_trace(tx_hash, address)

        tx = self.get_transaction(tx_hash)
        if tx.get("to"):
            logger.info(f"{tx_hash} calls {tx['to']}; recovering creation code from trace")
            return self.get_creation_from_trace(tx_hash, address)

        deployed = self.get_receipt(tx_hash).get("contractAddress")
        if deployed is None or str(deployed).lower() != address.lower():
            logger.warning(f"{tx_hash} deployed {deployed}, not {address}; comparing its input anyway")
        return _as_bytes(tx["input"])

    def observe(self, request: VerificationRequest) -> OnChainObservation:
        """Fetch everything the checks of `request` need from the chain."""
        if request.onchain_bytecode_file_path is not None:
            logger.info(f"runtime bytecode from file {request.onchain_bytecode_file_path}")
            runtime = read_bytecode_file(request.onchain_bytecode_file_path)
        else:
            runtime = self.get_runtime_code(request.contract_address)

        creation = None
        if request.contract_creation_tx_hash:
            creation = self.resolve_creation_bytecode(
                request.contract_creation_tx_hash,
                request.contract_address,
                request.deployment_path,
            )
        logger.debug(
            f"observed runtime={len(runtime)}B creation="
            f"{'-' if creation is None else f'{len(creation)}B'}"
        )
        return OnChainObservation(runtime_code=runtime, creation_code=creation)
