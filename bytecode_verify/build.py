"""
Build orchestration.

The compiler is an external collaborator behind `CompilerRunner`:
a command goes in, success or an exception comes out. Explicit
optimizer-run builds are cached by (contract, runs); builds are
serialized because they share one output directory.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from bytecode_verify.artifacts import ArtifactStore
from bytecode_verify.errors import InvalidRequestError
from bytecode_verify.eth.metrics import Metrics
from bytecode_verify.eth.settings import Settings
from bytecode_verify.models import CompiledArtifact, VerificationRequest

logger = logging.getLogger(__name__)


def validate_optimizer_runs(value: Any) -> int:
    """
    Raises:
        InvalidRequestError: Unless value is a positive int (bool excluded)
    """
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidRequestError(
            "optimizer_runs",
            f"invalid optimizer_runs: {value!r} (expected positive integer)",
        )
    return value


def build_command(optimizer_runs: int, build_tool: str = "forge") -> List[str]:
    """`<build_tool> build --optimizer-runs <N>` as an argv list."""
    runs = validate_optimizer_runs(optimizer_runs)
    return [build_tool, "build", "--optimizer-runs", str(runs)]


class CompilerRunner(Protocol):
    def run(self, command: Sequence[str]) -> None:
        ...


@dataclass(frozen=True)
class SubprocessCompilerRunner:
    """
    Runs the build tool in the project root.

    No shell is involved; CalledProcessError / FileNotFoundError propagate.
    """

    cwd: Path = Path(".")

    def run(self, command: Sequence[str]) -> None:
        logger.info(f"running `{shlex.join(command)}` in {self.cwd}")
        subprocess.run(list(command), cwd=self.cwd, check=True)


class BuildOrchestrator:
    """
    Yields the compiled artifact a verification compares against.

    Usage:
        orchestrator = BuildOrchestrator.from_settings(Settings.load())
        artifact = orchestrator.ensure_artifact(request)
    """

    def __init__(
        self,
        store: ArtifactStore,
        runner: CompilerRunner,
        *,
        metrics: Optional[Metrics] = None,
    ):
        self.store = store
        self.runner = runner
        self.metrics = metrics or Metrics()
        self._cache: Dict[Tuple[str, int], CompiledArtifact] = {}
        self._cache_lock = threading.Lock()
        self._build_lock = threading.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        runner: Optional[CompilerRunner] = None,
        metrics: Optional[Metrics] = None,
    ) -> BuildOrchestrator:
        root = Path(settings.PROJECT_ROOT)
        store = ArtifactStore(
            artifacts_dir=root / settings.ARTIFACTS_DIR,
            alternative_dir=root / settings.ALTERNATIVE_ARTIFACTS_DIR,
            build_tool=settings.BUILD_TOOL,
        )
        return cls(store, runner or SubprocessCompilerRunner(cwd=root), metrics=metrics)

    def _cached(self, key: Tuple[str, int]) -> Optional[CompiledArtifact]:
        with self._cache_lock:
            return self._cache.get(key)

    def ensure_artifact(self, request: VerificationRequest) -> CompiledArtifact:
        """
        Compile if optimizer runs are given, then load the artifact.

        Without optimizer runs the artifact already on disk (or the pinned
        alternative artifact) is used as is.

        Raises:
            InvalidRequestError: If optimizer runs are invalid (nothing is run)
            ArtifactNotFoundError: If no artifact exists after the build
        """
        if request.optimizer_runs is None:
            return self.store.load(request.contract_name, request.artifact_type)

        runs = validate_optimizer_runs(request.optimizer_runs)
        key = (request.contract_name, runs)
        artifact = self._cached(key)
        if artifact is not None:
            self.metrics.inc("artifact_cache_hits_total")
            return artifact

        with self._build_lock:
            # Another request may have built this key while we waited
            artifact = self._cached(key)
            if artifact is not None:
                self.metrics.inc("artifact_cache_hits_total")
                return artifact
            self.runner.run(build_command(runs, self.store.build_tool))
            self.metrics.inc("builds_total")
            artifact = self.store.load(request.contract_name)
            with self._cache_lock:
                self._cache[key] = artifact
        return artifact
