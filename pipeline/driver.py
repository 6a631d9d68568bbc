"""
Pipeline driver for the recursive vote circuit chain.

Stages run strictly in dependency order:

    voteverifier -> dummy -> aggregator -> statetransition

Every stage reads only persisted upstream artifacts, validates them before
its own destination is touched, and is complete once its stage manifest is
written. The driver never runs an upstream stage on its own initiative: a
missing prerequisite is reported and the stage is not attempted.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

import requests

from config.config import STAGE_NAMES, PipelineConfig
from stages.aggregator import compile_aggregator
from stages.circuits import (
    AGGREGATOR_CURVE,
    STATE_TRANSITION_CURVE,
    VOTE_VERIFIER_CURVE,
    StageOutput,
    check_key_binding,
)
from stages.dummy import DUMMY_CURVE, compile_dummy
from stages.statetransition import compile_state_transition
from stages.voteverifier import compile_vote_verifier
from store.artifact_store import (
    ARTIFACT_EXTENSIONS,
    ArtifactStore,
    StageManifest,
    StageVerification,
)
from utils.utils import (
    PerformanceMonitor,
    compute_hash,
    create_performance_report,
    format_duration,
    save_results,
)
from zk.artifacts import ConstraintSystem, VerifyingKey
from zk.backend import ProofBackend, create_backend
from zk.curves import Curve
from zk.errors import (
    ArtifactIntegrityError,
    DeserializationError,
    PipelineCancelled,
    PipelineError,
    PrerequisiteMissingError,
    ShapeMismatchError,
    StorageError,
)

logger = logging.getLogger(__name__)

STAGE_LABELS = {
    "voteverifier": "Vote Verifier",
    "dummy": "Dummy",
    "aggregator": "Aggregator",
    "statetransition": "State Transition",
}

STAGE_CURVES = {
    "voteverifier": VOTE_VERIFIER_CURVE,
    "dummy": DUMMY_CURVE,
    "aggregator": AGGREGATOR_CURVE,
    "statetransition": STATE_TRANSITION_CURVE,
}


class StageState(Enum):
    NOT_STARTED = "NotStarted"
    ARTIFACTS_MISSING = "ArtifactsMissing"
    COMPILED = "Compiled"
    SETUP_DONE = "SetupDone"
    PERSISTED = "Persisted"


@dataclass
class StageResult:
    stage: str
    state: StageState = StageState.NOT_STARTED
    destination: Optional[Path] = None
    digests: Dict[str, str] = field(default_factory=dict)
    duration_seconds: Optional[float] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.state is StageState.PERSISTED


class CancellationToken:
    """Set from a signal handler, checked by the driver between stages"""

    def __init__(self):
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "interrupted"):
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, stage: str):
        if self.cancelled:
            raise PipelineCancelled(
                f"run cancelled before {STAGE_LABELS.get(stage, stage)} ({self.reason})", stage)


@dataclass
class RunContext:
    """Everything one pipeline invocation needs; nothing is process-global"""
    config: PipelineConfig
    backend: ProofBackend
    token: CancellationToken = field(default_factory=CancellationToken)
    monitor: PerformanceMonitor = field(default_factory=PerformanceMonitor)
    session: Optional[requests.Session] = None

    @classmethod
    def from_config(cls, config: PipelineConfig, backend: Optional[ProofBackend] = None,
                    token: Optional[CancellationToken] = None) -> "RunContext":
        if backend is None:
            backend = create_backend(
                config.backend.kind,
                setup_seed=config.backend.setup_seed,
                executable=config.backend.executable,
                timeout=config.backend.timeout,
            )
        return cls(config=config, backend=backend, token=token or CancellationToken())


def fetch_ballot_vkey(source: Union[str, Path], expected_sha256: Optional[str] = None,
                      timeout: int = 30, session: Optional[requests.Session] = None) -> bytes:
    """Read the ballot-proof verifying key from a path or an http(s) URL"""
    source = str(source).strip()
    if not source:
        raise PrerequisiteMissingError("ballot proof verification key path cannot be empty")

    if source.startswith(("http://", "https://")):
        http = session or requests
        try:
            response = http.get(source, timeout=timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise PrerequisiteMissingError(
                f"could not fetch ballot proof verification key from {source}: {e}") from e
        data = response.content
    else:
        path = Path(source)
        if not path.is_file():
            raise PrerequisiteMissingError(
                f"ballot proof verification key does not exist at path: {source}", path=path)
        try:
            data = path.read_bytes()
        except OSError as e:
            raise StorageError(
                f"failed to read ballot proof verification key: {e}", path=path) from e

    if expected_sha256:
        actual = compute_hash(data)
        if actual != expected_sha256.lower():
            raise ArtifactIntegrityError(
                f"ballot proof verification key digest mismatch "
                f"(expected {expected_sha256}, got {actual})",
                expected=expected_sha256, actual=actual)
    return data


class PipelineDriver:
    """Runs, inspects and verifies the four circuit stages"""

    def __init__(self, context: RunContext):
        self.context = context
        self.config = context.config
        self.backend = context.backend
        self.stage_dirs: Dict[str, Path] = {
            stage: self.config.stage_dir(stage) for stage in STAGE_NAMES
        }
        self.last_result: Optional[StageResult] = None

    def store(self, stage: str) -> ArtifactStore:
        return ArtifactStore(
            self.stage_dirs[stage],
            stage,
            naming=self.config.store.naming,
            base_url=self.config.store.base_url,
        )

    # ------------------------------------------------------------------
    # Stage operations
    # ------------------------------------------------------------------

    def generate_voteverifier_artifacts(self, destination: Optional[Path] = None,
                                        ballot_vkey: Optional[Union[str, Path]] = None) -> StageResult:
        source = ballot_vkey if ballot_vkey is not None else self.config.ballot_vkey

        def build(result: StageResult) -> Tuple[StageOutput, Dict]:
            raw = fetch_ballot_vkey(
                source, self.config.ballot_vkey_sha256,
                timeout=self.config.fetch_timeout, session=self.context.session)
            ccs = compile_vote_verifier(self.backend, raw)
            self._transition(result, StageState.COMPILED)
            logger.info("Vote Verifier circuit compiled successfully.")
            pk, vk = self.backend.setup(ccs)
            self._transition(result, StageState.SETUP_DONE)
            parameters = {
                "ballot_vkey": str(source),
                "ballot_vkey_sha256": compute_hash(raw),
            }
            return StageOutput(ccs, pk, vk), parameters

        return self._run_stage("voteverifier", destination, build)

    def generate_dummy_artifacts(self, destination: Optional[Path] = None) -> StageResult:
        def build(result: StageResult) -> Tuple[StageOutput, Dict]:
            vv_ccs, vv_ccs_digest = self._load_ccs("voteverifier", VOTE_VERIFIER_CURVE)
            output = compile_dummy(self.backend, vv_ccs)
            self._transition(result, StageState.COMPILED)
            self._transition(result, StageState.SETUP_DONE)
            return output, {"inputs": {"voteverifier.ccs": vv_ccs_digest}}

        return self._run_stage("dummy", destination, build)

    def generate_aggregator_artifacts(self, destination: Optional[Path] = None) -> StageResult:
        votes_per_batch = self.config.votes_per_batch

        def build(result: StageResult) -> Tuple[StageOutput, Dict]:
            base_vk, base_vk_digest = self._load_vk("voteverifier", VOTE_VERIFIER_CURVE)
            dummy_ccs, dummy_ccs_digest = self._load_ccs("dummy", DUMMY_CURVE)
            dummy_vk, dummy_vk_digest = self._load_vk("dummy", DUMMY_CURVE)

            ccs = compile_aggregator(
                self.backend, dummy_ccs, dummy_vk, base_vk, votes_per_batch)
            self._transition(result, StageState.COMPILED)
            logger.info("Aggregator circuit compiled successfully.")
            pk, vk = self.backend.setup(ccs)
            self._transition(result, StageState.SETUP_DONE)
            parameters = {
                "votes_per_batch": votes_per_batch,
                "inputs": {
                    "voteverifier.vk": base_vk_digest,
                    "dummy.ccs": dummy_ccs_digest,
                    "dummy.vk": dummy_vk_digest,
                },
            }
            return StageOutput(ccs, pk, vk), parameters

        return self._run_stage("aggregator", destination, build)

    def generate_statetransition_artifacts(self, destination: Optional[Path] = None) -> StageResult:
        def build(result: StageResult) -> Tuple[StageOutput, Dict]:
            agg_ccs, agg_ccs_digest = self._load_ccs("aggregator", AGGREGATOR_CURVE)
            agg_vk, agg_vk_digest = self._load_vk("aggregator", AGGREGATOR_CURVE)

            ccs = compile_state_transition(self.backend, agg_ccs, agg_vk)
            self._transition(result, StageState.COMPILED)
            logger.info("State Transition circuit compiled successfully.")
            pk, vk = self.backend.setup(ccs)
            self._transition(result, StageState.SETUP_DONE)
            parameters = {
                "inputs": {
                    "aggregator.ccs": agg_ccs_digest,
                    "aggregator.vk": agg_vk_digest,
                },
            }
            return StageOutput(ccs, pk, vk), parameters

        return self._run_stage("statetransition", destination, build)

    def generate(self, stage: str, **kwargs) -> StageResult:
        operations = {
            "voteverifier": self.generate_voteverifier_artifacts,
            "dummy": self.generate_dummy_artifacts,
            "aggregator": self.generate_aggregator_artifacts,
            "statetransition": self.generate_statetransition_artifacts,
        }
        if stage not in operations:
            raise ValueError(f"Unknown stage: {stage}")
        return operations[stage](**kwargs)

    def generate_all(self, ballot_vkey: Optional[Union[str, Path]] = None) -> List[StageResult]:
        """Run every stage in order, stopping at the first failure"""
        results: List[StageResult] = []
        for stage in STAGE_NAMES:
            kwargs = {"ballot_vkey": ballot_vkey} if stage == "voteverifier" else {}
            try:
                self.context.token.raise_if_cancelled(stage)
                results.append(self.generate(stage, **kwargs))
            except PipelineCancelled as e:
                logger.warning(str(e))
                results.append(StageResult(stage=stage, error=str(e)))
                break
            except PipelineError:
                results.append(self.last_result)
                break

        persisted = sum(1 for r in results if r.ok)
        logger.info(f"Pipeline finished: {persisted}/{len(STAGE_NAMES)} stages persisted")
        return results

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _transition(self, result: StageResult, state: StageState):
        logger.info(f"{result.stage}: {result.state.value} -> {state.value}")
        result.state = state

    def _run_stage(self, stage: str, destination: Optional[Path],
                   build: Callable[[StageResult], Tuple[StageOutput, Dict]]) -> StageResult:
        if destination is not None:
            self.stage_dirs[stage] = Path(destination)
        store = self.store(stage)
        label = STAGE_LABELS[stage]

        result = StageResult(stage=stage, destination=store.directory)
        self.last_result = result
        logger.info(f"Generating {label} artifacts in {store.directory}")

        start = time.time()
        try:
            with self.context.monitor.start_operation(f"generate_{stage}"):
                output, parameters = build(result)
                self._persist(store, result, output, parameters)
        except PrerequisiteMissingError as e:
            self._fail(result, e, stage)
            self._transition(result, StageState.ARTIFACTS_MISSING)
            raise
        except PipelineError as e:
            self._fail(result, e, stage)
            raise
        finally:
            result.duration_seconds = time.time() - start

        logger.info(
            f"{label} artifacts generated in {format_duration(result.duration_seconds)}")
        return result

    def _fail(self, result: StageResult, error: PipelineError, stage: str):
        if error.stage is None:
            error.stage = stage
        result.error = str(error)
        logger.error(f"Error generating {STAGE_LABELS[stage]} artifacts: {error}")

    def _load(self, stage: str, kind: str) -> Tuple[bytes, str]:
        try:
            data = self.store(stage).load(kind)
        except ArtifactIntegrityError:
            raise
        except PrerequisiteMissingError as e:
            raise PrerequisiteMissingError(
                f"{e.args[0]}. Please generate {STAGE_LABELS[stage]} artifacts first",
                path=e.path) from e
        return data, compute_hash(data)

    def _load_ccs(self, stage: str, curve: Curve) -> Tuple[ConstraintSystem, str]:
        data, digest = self._load(stage, "ccs")
        return ConstraintSystem.deserialize(data, curve), digest

    def _load_vk(self, stage: str, curve: Curve) -> Tuple[VerifyingKey, str]:
        """Load a stage's vk, refusing one that was not set up for the stage's ccs"""
        data, digest = self._load(stage, "vk")
        vk = VerifyingKey.deserialize(data, curve)
        ccs, _ = self._load_ccs(stage, curve)
        try:
            check_key_binding(ccs, vk, stage)
        except ShapeMismatchError as e:
            raise PrerequisiteMissingError(
                f"{stage}.vk does not belong to {stage}.ccs ({e.args[0]}). "
                f"Please generate {STAGE_LABELS[stage]} artifacts first") from e
        return vk, digest

    def _persist(self, store: ArtifactStore, result: StageResult,
                 output: StageOutput, parameters: Dict):
        label = STAGE_LABELS[result.stage]
        blobs = [(kind, artifact.serialize())
                 for kind, artifact in (("ccs", output.ccs), ("pk", output.pk), ("vk", output.vk))
                 if artifact is not None]

        store.ensure()
        store.begin_manifest()
        artifacts = {}
        for kind, data in blobs:
            digest = store.put(data, kind)
            name = store.filename_for(kind, digest)
            store.manifest_append(name, digest)
            artifacts[kind] = {"file": name, "sha256": digest}
            result.digests[name] = digest
            logger.info(f"{result.stage}.{kind} hash: {digest}")

        store.write_stage_manifest(StageManifest(
            stage=result.stage,
            curve=output.ccs.curve.value,
            artifacts=artifacts,
            parameters=parameters,
        ))
        self._transition(result, StageState.PERSISTED)
        logger.info(f"{label} hashes logged successfully in {store.hashes_path}")

        if self.config.store.prune_stale:
            store.prune(entry["file"] for entry in artifacts.values())

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def status(self) -> Dict[str, StageState]:
        """On-disk state of every stage"""
        states = {}
        for stage in STAGE_NAMES:
            store = self.store(stage)
            try:
                manifest = store.read_stage_manifest()
            except DeserializationError as e:
                logger.warning(f"{stage}: {e}")
                states[stage] = StageState.ARTIFACTS_MISSING
                continue

            if manifest is not None:
                present = all((store.directory / entry["file"]).is_file()
                              for entry in manifest.artifacts.values())
                states[stage] = StageState.PERSISTED if present else StageState.ARTIFACTS_MISSING
            elif any(store.scan(kind) for kind in ARTIFACT_EXTENSIONS):
                states[stage] = StageState.ARTIFACTS_MISSING
            else:
                states[stage] = StageState.NOT_STARTED
        return states

    def verify(self, stages: Optional[Iterable[str]] = None) -> List[StageVerification]:
        """Re-hash persisted artifacts against their stage manifests"""
        reports = []
        for stage in (stages or STAGE_NAMES):
            if stage not in self.stage_dirs:
                raise ValueError(f"Unknown stage: {stage}")
            report = self.store(stage).verify()
            if report.ok:
                logger.info(f"{stage}: all artifacts match their recorded digests")
            else:
                for problem in report.problems:
                    logger.error(f"{stage}: {problem}")
            reports.append(report)
        return reports

    def write_reports(self, results: List[StageResult]) -> Tuple[Path, Path]:
        """JSON run summary plus performance report under results_dir"""
        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        summary_path = self.config.results_dir / f"pipeline_run_{timestamp}.json"
        save_results({
            'backend': self.backend.name,
            'votes_per_batch': self.config.votes_per_batch,
            'stages': results,
            'performance': self.context.monitor.get_summary(),
        }, summary_path)

        report_path = self.config.results_dir / "performance_report.txt"
        report_path.parent.mkdir(parents=True, exist_ok=True)
        with open(report_path, "w") as f:
            f.write(create_performance_report(self.context.monitor))
        logger.info(f"Performance report: {report_path}")
        return summary_path, report_path
