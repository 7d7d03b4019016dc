"""
Chain access and runtime configuration for the verifier.
"""

from bytecode_verify.eth.chain_client import ChainClient, OnChainObservation, read_bytecode_file
from bytecode_verify.eth.metrics import Metrics
from bytecode_verify.eth.settings import Settings

__all__ = [
    "ChainClient",
    "Metrics",
    "OnChainObservation",
    "Settings",
    "read_bytecode_file",
]
