"""
Content-addressed artifact store.

One ``ArtifactStore`` owns one stage directory:

    <stage>/
        <sha256>.ccs | <stage>.ccs      constraint system
        <sha256>.pk  | <stage>.pk       proving key
        <sha256>.vk  | <stage>.vk       verifying key
        <stage>_hashes.txt              "name digest" lines
        <stage>_manifest.json           exact file names + digests, written last

Writes go through a temporary file in the same directory followed by
``os.replace`` so a crash never leaves a partially written artifact under
its final name.
"""

import json
import logging
import os
import re
import tempfile
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from utils.utils import compute_hash, format_bytes
from zk.errors import (
    ArtifactIntegrityError,
    DeserializationError,
    PrerequisiteMissingError,
    StorageError,
)

logger = logging.getLogger(__name__)

ARTIFACT_EXTENSIONS = ("ccs", "pk", "vk")
NAMING_MODES = ("content", "logical")
MANIFEST_VERSION = 1

_DIGEST_RE = re.compile(r"^[0-9a-f]{64}$")


def is_digest(value: str) -> bool:
    return bool(_DIGEST_RE.match(value))


@dataclass
class StageManifest:
    """Structured record of one persisted stage"""
    stage: str
    curve: str
    artifacts: Dict[str, Dict[str, str]]
    parameters: Dict[str, Any] = field(default_factory=dict)
    created_at: str = ""
    format_version: int = MANIFEST_VERSION

    def digest_of(self, kind: str) -> Optional[str]:
        entry = self.artifacts.get(kind)
        return entry["sha256"] if entry else None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StageManifest":
        try:
            artifacts = {
                str(kind): {"file": str(entry["file"]), "sha256": str(entry["sha256"])}
                for kind, entry in data["artifacts"].items()
            }
            return cls(
                stage=str(data["stage"]),
                curve=str(data["curve"]),
                artifacts=artifacts,
                parameters=dict(data.get("parameters") or {}),
                created_at=str(data.get("created_at", "")),
                format_version=int(data.get("format_version", MANIFEST_VERSION)),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise DeserializationError(f"malformed stage manifest: {e}") from e


@dataclass
class StageVerification:
    """Outcome of re-hashing a stage against its manifest"""
    stage: str
    ok: bool
    checked: Dict[str, bool] = field(default_factory=dict)
    problems: List[str] = field(default_factory=list)


class ArtifactStore:
    """Persistence for one stage directory"""

    def __init__(self, directory: Path, stage: str, naming: str = "content",
                 base_url: Optional[str] = None):
        if naming not in NAMING_MODES:
            raise ValueError(f"Unknown naming mode: {naming}")
        self.directory = Path(directory)
        self.stage = stage
        self.naming = naming
        self.base_url = base_url.rstrip("/") if base_url else None

    def __repr__(self) -> str:
        return f"ArtifactStore({str(self.directory)!r}, stage={self.stage!r})"

    @property
    def hashes_path(self) -> Path:
        return self.directory / f"{self.stage}_hashes.txt"

    @property
    def manifest_path(self) -> Path:
        return self.directory / f"{self.stage}_manifest.json"

    def exists(self) -> bool:
        return self.directory.is_dir()

    def ensure(self):
        """Create the stage directory"""
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(
                f"failed to create directory {self.directory}: {e}",
                path=self.directory, stage=self.stage) from e

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def filename_for(self, kind: str, digest: str) -> str:
        if self.naming == "logical":
            return f"{self.stage}.{kind}"
        return f"{digest}.{kind}"

    def _write_atomic(self, path: Path, data: bytes):
        if not self.directory.is_dir():
            raise StorageError(
                f"artifact directory {self.directory} does not exist",
                path=self.directory, stage=self.stage)

        try:
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{path.name}.", suffix=".tmp", dir=str(self.directory))
        except OSError as e:
            raise StorageError(
                f"failed to create temporary file in {self.directory}: {e}",
                path=self.directory, stage=self.stage) from e

        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except OSError as e:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise StorageError(
                f"failed to write {path.name}: {e}", path=path, stage=self.stage) from e

    def put(self, data: bytes, kind: str) -> str:
        """Store bytes and return their hex SHA-256 digest"""
        if kind not in ARTIFACT_EXTENSIONS:
            raise ValueError(f"Unknown artifact kind: {kind}")
        digest = compute_hash(data)
        path = self.directory / self.filename_for(kind, digest)
        self._write_atomic(path, data)
        logger.debug(f"Wrote {path} ({format_bytes(len(data))})")
        return digest

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def scan(self, kind: str) -> List[Path]:
        """All files in the stage directory with the given extension"""
        if not self.directory.is_dir():
            return []
        suffix = f".{kind.lstrip('.')}"
        return sorted(
            p for p in self.directory.iterdir()
            if p.is_file() and p.suffix == suffix and not p.name.startswith(".")
        )

    def resolve(self, ref: str) -> Path:
        """Locate an artifact by exact file name, by digest, or by extension"""
        if not self.directory.is_dir():
            raise PrerequisiteMissingError(
                f"{ref} not found: {self.directory} does not exist",
                stage=self.stage, path=self.directory)

        exact = self.directory / ref
        if exact.is_file():
            return exact

        if is_digest(ref):
            matches = [p for kind in ARTIFACT_EXTENSIONS
                       for p in self.scan(kind) if p.stem == ref]
            what = f"artifact {ref}"
        elif ref.lstrip(".") in ARTIFACT_EXTENSIONS:
            matches = self.scan(ref)
            what = f".{ref.lstrip('.')} file"
        else:
            raise PrerequisiteMissingError(
                f"{ref} not found in {self.directory}",
                stage=self.stage, path=exact)

        if not matches:
            raise PrerequisiteMissingError(
                f"no {what} in {self.directory}", stage=self.stage, path=self.directory)
        if len(matches) > 1:
            names = ", ".join(p.name for p in matches)
            raise PrerequisiteMissingError(
                f"ambiguous {what} in {self.directory}: {names}",
                stage=self.stage, path=self.directory)
        return matches[0]

    def _read(self, path: Path) -> bytes:
        try:
            return path.read_bytes()
        except OSError as e:
            raise StorageError(
                f"failed to read {path}: {e}", path=path, stage=self.stage) from e

    def _check(self, path: Path, data: bytes, expected: Optional[str]):
        if expected is None and is_digest(path.stem):
            expected = path.stem
        if expected is None:
            return
        actual = compute_hash(data)
        if actual != expected:
            raise ArtifactIntegrityError(
                f"{path.name} does not match its recorded digest "
                f"(expected {expected}, got {actual})",
                expected=expected, actual=actual, stage=self.stage, path=path)

    def get(self, ref: str) -> bytes:
        """Read an artifact; content-addressed files are re-hashed on read"""
        path = self.resolve(ref)
        data = self._read(path)
        self._check(path, data, None)
        return data

    def locate(self, kind: str) -> Tuple[Path, Optional[str]]:
        """
        (path, recorded digest) for one artifact kind.

        The stage manifest wins. Without one, a left-over hash log marks an
        interrupted run and is reported as missing; only a directory with
        neither falls back to ``<stage>.<kind>`` or a single-match scan.
        """
        manifest = self.read_stage_manifest()
        if manifest is not None and kind in manifest.artifacts:
            entry = manifest.artifacts[kind]
            path = self.directory / entry["file"]
            if not path.is_file():
                raise PrerequisiteMissingError(
                    f"{entry['file']} listed in {self.manifest_path.name} not found in {self.directory}",
                    stage=self.stage, path=path)
            return path, entry["sha256"]

        # A hash log without a stage manifest means the last run stopped mid-persist
        if self.hashes_path.is_file():
            raise PrerequisiteMissingError(
                f"{self.stage} artifacts in {self.directory} are incomplete: "
                f"{self.hashes_path.name} present without {self.manifest_path.name}",
                stage=self.stage, path=self.manifest_path)

        logical = self.directory / f"{self.stage}.{kind}"
        if logical.is_file():
            return logical, None
        if not self.scan(kind):
            raise PrerequisiteMissingError(
                f"{self.stage}.{kind} not found in {self.directory}",
                stage=self.stage, path=logical)
        return self.resolve(kind), None

    def load(self, kind: str) -> bytes:
        """Read the stage's artifact of one kind and check it against its digest"""
        path, expected = self.locate(kind)
        data = self._read(path)
        self._check(path, data, expected)
        return data

    # ------------------------------------------------------------------
    # Manifests
    # ------------------------------------------------------------------

    def begin_manifest(self):
        """Truncate the hash log and drop the stage manifest for a fresh run"""
        try:
            if self.manifest_path.exists():
                self.manifest_path.unlink()
            with open(self.hashes_path, "w"):
                pass
        except OSError as e:
            raise StorageError(
                f"failed to create hash log {self.hashes_path}: {e}",
                path=self.hashes_path, stage=self.stage) from e

    def manifest_append(self, name: str, digest: str):
        line_name = f"{self.base_url}/{name}" if self.base_url else name
        try:
            with open(self.hashes_path, "a") as f:
                f.write(f"{line_name} {digest}\n")
        except OSError as e:
            raise StorageError(
                f"failed to write to hash log {self.hashes_path}: {e}",
                path=self.hashes_path, stage=self.stage) from e

    def read_hashes(self) -> Dict[str, str]:
        """Parse the hash log into {name: digest}"""
        if not self.hashes_path.is_file():
            return {}
        hashes = {}
        for line in self._read(self.hashes_path).decode("utf-8").splitlines():
            parts = line.split()
            if len(parts) != 2:
                continue
            hashes[parts[0]] = parts[1]
        return hashes

    def write_stage_manifest(self, manifest: StageManifest):
        if not manifest.created_at:
            manifest.created_at = datetime.now(timezone.utc).isoformat()
        data = json.dumps(manifest.to_dict(), indent=2, sort_keys=True).encode("utf-8")
        self._write_atomic(self.manifest_path, data)
        logger.debug(f"Wrote stage manifest {self.manifest_path}")

    def read_stage_manifest(self) -> Optional[StageManifest]:
        if not self.manifest_path.is_file():
            return None
        raw = self._read(self.manifest_path)
        try:
            data = json.loads(raw.decode("utf-8"))
        except ValueError as e:
            raise DeserializationError(
                f"{self.manifest_path.name} is not valid JSON: {e}", stage=self.stage) from e
        if not isinstance(data, dict):
            raise DeserializationError(
                f"{self.manifest_path.name} must contain an object", stage=self.stage)
        return StageManifest.from_dict(data)

    def prune(self, keep: Iterable[str]) -> List[Path]:
        """Remove artifact files not named in keep (stale digests from earlier runs)"""
        keep = set(keep)
        removed = []
        for kind in ARTIFACT_EXTENSIONS:
            for path in self.scan(kind):
                if path.name in keep:
                    continue
                try:
                    path.unlink()
                    removed.append(path)
                except OSError as e:
                    logger.warning(f"Could not remove stale artifact {path}: {e}")
        if removed:
            logger.info(f"Removed {len(removed)} stale artifact(s) from {self.directory}")
        return removed

    def verify(self) -> StageVerification:
        """Re-hash every artifact named in the stage manifest"""
        result = StageVerification(stage=self.stage, ok=True)
        try:
            manifest = self.read_stage_manifest()
        except DeserializationError as e:
            result.ok = False
            result.problems.append(str(e))
            return result

        if manifest is None:
            result.ok = False
            result.problems.append(f"{self.manifest_path.name} not found in {self.directory}")
            return result

        logged = self.read_hashes()
        logged_digests = set(logged.values())

        for kind, entry in sorted(manifest.artifacts.items()):
            path = self.directory / entry["file"]
            if not path.is_file():
                result.checked[kind] = False
                result.problems.append(f"{entry['file']} is missing")
                continue
            actual = compute_hash(self._read(path))
            matches = actual == entry["sha256"]
            result.checked[kind] = matches
            if not matches:
                result.problems.append(
                    f"{entry['file']}: expected {entry['sha256']}, got {actual}")
            if entry["sha256"] not in logged_digests:
                result.problems.append(
                    f"{entry['file']} is not listed in {self.hashes_path.name}")

        result.ok = not result.problems
        return result
