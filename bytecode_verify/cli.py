"""
Verify on-chain bytecode against a compiled artifact.

Usage:
    bytecode-verify --contract-name FiatTokenProxy \\
        --contract-address 0x... --creation-tx-hash 0x... \\
        --metadata-file artifacts/FiatTokenProxy.metadata.json

Exit codes:
    0 - every check matched
    1 - at least one check mismatched
    2 - invalid request or processing error
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import Any, Dict, List, Optional

from bytecode_verify.compare import BytecodeVerifier
from bytecode_verify.errors import BytecodeVerifyError
from bytecode_verify.eth.settings import Settings
from bytecode_verify.models import (
    ArtifactType,
    BytecodeVerificationType,
    DeploymentPath,
    VerificationRequest,
)


def _runs(value: str) -> Any:
    # Digits become an int; anything else goes to request validation as is
    v = value.strip()
    return int(v) if v.lstrip("-").isdigit() else value


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="bytecode-verify",
        description="Verify that on-chain bytecode matches a compiled artifact",
    )
    p.add_argument("--contract-name", required=True)
    p.add_argument("--contract-address", required=True)
    p.add_argument(
        "--verification-type",
        choices=[t.value for t in BytecodeVerificationType],
        default=BytecodeVerificationType.PARTIAL.value,
    )
    p.add_argument("--library-name", help="Library linked into the contract")
    p.add_argument("--library-address", help="Deployed address of --library-name")
    p.add_argument("--is-library", action="store_true", help="The contract itself is a library")
    p.add_argument("--creation-tx-hash", help="Transaction that deployed the contract")
    p.add_argument(
        "--deployment-path",
        choices=[d.value for d in DeploymentPath],
        default=DeploymentPath.AUTO.value,
        help="direct: tx input, trace: debug_traceTransaction, auto: pick by tx shape",
    )
    p.add_argument("--onchain-bytecode-file", help="Hex runtime bytecode used instead of eth_getCode")
    p.add_argument("--metadata-file", help="Compiler metadata document to check the embedded hash against")
    p.add_argument(
        "--artifact-type",
        choices=[a.value for a in ArtifactType],
        default=ArtifactType.DEFAULT.value,
    )
    p.add_argument("--optimizer-runs", type=_runs, help="Rebuild with this optimizer run count first")
    p.add_argument("--rpc-url", help="Overrides RPC_URL")
    p.add_argument("--json", action="store_true", help="Print results as JSON")
    p.add_argument("-v", "--verbose", action="store_true")
    return p


def request_fields(args: argparse.Namespace) -> Dict[str, Any]:
    fields: Dict[str, Any] = {
        "contract_name": args.contract_name,
        "contract_address": args.contract_address,
        "verification_type": args.verification_type,
        "is_library": args.is_library,
        "deployment_path": args.deployment_path,
        "artifact_type": args.artifact_type,
        "library_name": args.library_name,
        "library_address": args.library_address,
        "contract_creation_tx_hash": args.creation_tx_hash,
        "onchain_bytecode_file_path": args.onchain_bytecode_file,
        "metadata_file_path": args.metadata_file,
        "optimizer_runs": args.optimizer_runs,
    }
    return {k: v for k, v in fields.items() if v is not None}


def build_verifier(args: argparse.Namespace) -> BytecodeVerifier:
    if args.rpc_url:
        os.environ["RPC_URL"] = args.rpc_url
    return BytecodeVerifier.from_settings(Settings.load())


def main(argv: Optional[List[str]] = None, *, verifier: Optional[BytecodeVerifier] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Validate before touching the environment, the compiler or the node
    try:
        request = VerificationRequest.parse(request_fields(args))
    except BytecodeVerifyError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 2

    if verifier is None:
        from dotenv import load_dotenv

        load_dotenv()
        try:
            verifier = build_verifier(args)
        except RuntimeError as e:
            print(f"❌ {e}", file=sys.stderr)
            return 2

    try:
        results = verifier.verify(request)
    except BytecodeVerifyError as e:
        print(f"❌ {type(e).__name__}: {e}", file=sys.stderr)
        return 2

    if args.json:
        print(json.dumps([r.to_dict() for r in results], indent=2))
    else:
        for r in results:
            print(f"{'✅' if r.equal else '❌'} {r.type.value}")
    return 0 if all(r.equal for r in results) else 1


if __name__ == "__main__":
    raise SystemExit(main())
