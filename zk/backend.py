"""
Proof-system collaborators.

The pipeline only ever calls two black-box operations on a backend:

    compile(curve, circuit) -> ConstraintSystem
    setup(ccs)              -> (ProvingKey, VerifyingKey)

``ReferenceBackend`` is a deterministic pure-Python stand-in that produces
structurally valid artifacts (right curve, right shapes, keys bound to their
constraint system) without any cryptographic soundness. It is what the test
suite and dry runs use. ``ExternalToolBackend`` drives a real proving tool
through subprocess calls, the same way circom/snarkjs are driven elsewhere
in the voting system.
"""

import hashlib
import json
import logging
import secrets
import subprocess
import tempfile
from pathlib import Path
from typing import Any, List, Optional, Tuple

from zk.artifacts import ConstraintSystem, ProvingKey, VerifyingKey, canonical_json
from zk.curves import Curve
from zk.errors import CircuitCompilationError, DeserializationError, TrustedSetupError

logger = logging.getLogger(__name__)


class ProofBackend:
    """Interface every proof-system backend implements"""

    name = "abstract"

    def compile(self, curve: Curve, circuit: Any) -> ConstraintSystem:
        raise NotImplementedError

    def setup(self, ccs: ConstraintSystem) -> Tuple[ProvingKey, VerifyingKey]:
        raise NotImplementedError


class ReferenceBackend(ProofBackend):
    """Deterministic compile, entropy-driven (or seeded) setup"""

    name = "reference"

    def __init__(self, setup_seed: Optional[str] = None):
        self.setup_seed = setup_seed

    def compile(self, curve: Curve, circuit: Any) -> ConstraintSystem:
        if circuit.curve != curve:
            raise CircuitCompilationError(
                f"circuit {circuit.name} is defined over {circuit.curve.value}, "
                f"cannot compile it over {curve.value}")

        description = circuit.describe()
        try:
            # Round-trip through canonical JSON so the stored shape is exactly
            # what gets hashed on every later read
            shape = _reload(canonical_json(description))
        except (TypeError, ValueError) as e:
            raise CircuitCompilationError(
                f"circuit {circuit.name} is not serializable: {e}") from e

        ccs = ConstraintSystem(
            curve=curve,
            name=circuit.name,
            nb_public=len(circuit.public_inputs),
            nb_commitments=circuit.nb_commitments,
            nb_constraints=circuit.estimate_constraints(),
            shape=shape,
        )
        logger.debug(
            f"Compiled {circuit.name} over {curve.value}: {ccs.nb_constraints} constraints")
        return ccs

    def setup(self, ccs: ConstraintSystem) -> Tuple[ProvingKey, VerifyingKey]:
        if ccs.nb_public < 0 or ccs.nb_constraints <= 0:
            raise TrustedSetupError(
                f"constraint system {ccs.name} has no constraints to set up")

        ccs_digest = ccs.digest()
        stream = _FieldStream(self._entropy(ccs_digest))
        params = ccs.curve.params
        modulus = params.base_modulus

        def g1() -> Tuple[int, ...]:
            return tuple(stream.below(modulus) for _ in range(params.g1_coordinates))

        def g2() -> Tuple[int, ...]:
            return tuple(stream.below(modulus) for _ in range(params.g2_coordinates))

        vk = VerifyingKey(
            curve=ccs.curve,
            alpha_g1=g1(),
            beta_g2=g2(),
            gamma_g2=g2(),
            delta_g2=g2(),
            k=tuple(g1() for _ in range(ccs.nb_public + 1)),
            nb_commitments=ccs.nb_commitments,
            ccs_digest=ccs_digest,
        )
        pk = ProvingKey(
            curve=ccs.curve,
            ccs_digest=ccs_digest,
            nb_constraints=ccs.nb_constraints,
            material=stream.read(params.base_bytes * (ccs.nb_public + 4)),
        )
        return pk, vk

    def _entropy(self, ccs_digest: str) -> bytes:
        if self.setup_seed is None:
            return secrets.token_bytes(32)
        return hashlib.sha256(f"{self.setup_seed}:{ccs_digest}".encode()).digest()


class _FieldStream:
    """SHA-256 counter-mode byte stream"""

    def __init__(self, seed: bytes):
        self.seed = seed
        self.counter = 0

    def read(self, n: int) -> bytes:
        out = bytearray()
        while len(out) < n:
            out += hashlib.sha256(self.seed + self.counter.to_bytes(8, "big")).digest()
            self.counter += 1
        return bytes(out[:n])

    def below(self, modulus: int) -> int:
        # 16 extra bytes keep the modular bias negligible
        width = (modulus.bit_length() + 7) // 8 + 16
        return int.from_bytes(self.read(width), "big") % modulus


def _reload(raw: bytes) -> Any:
    return json.loads(raw.decode("utf-8"))


class ExternalToolBackend(ProofBackend):
    """
    Delegates compile/setup to an external executable:

        <tool> compile --curve <curve> --circuit <circuit.json> --out <file.ccs>
        <tool> setup   --curve <curve> --ccs <file.ccs> --pk <file.pk> --vk <file.vk>

    The tool reads the circuit description written by this package and emits
    artifacts in this package's envelope format.
    """

    name = "external"

    def __init__(self, executable: str, timeout: int = 3600, extra_args: Optional[List[str]] = None):
        self.executable = executable
        self.timeout = timeout
        self.extra_args = list(extra_args or [])

    def compile(self, curve: Curve, circuit: Any) -> ConstraintSystem:
        with tempfile.TemporaryDirectory(prefix="ccs_") as tmp:
            workdir = Path(tmp)
            circuit_file = workdir / f"{circuit.name}.circuit.json"
            output_file = workdir / f"{circuit.name}.ccs"
            circuit_file.write_bytes(canonical_json(circuit.describe()))

            cmd = [
                self.executable, 'compile',
                '--curve', curve.value,
                '--circuit', str(circuit_file),
                '--out', str(output_file),
            ] + self.extra_args
            self._run(cmd, CircuitCompilationError, f"compile {circuit.name}")

            try:
                return ConstraintSystem.deserialize(output_file.read_bytes(), curve)
            except FileNotFoundError as e:
                raise CircuitCompilationError(
                    f"{self.executable} did not write {output_file.name}") from e

    def setup(self, ccs: ConstraintSystem) -> Tuple[ProvingKey, VerifyingKey]:
        with tempfile.TemporaryDirectory(prefix="setup_") as tmp:
            workdir = Path(tmp)
            ccs_file = workdir / f"{ccs.name}.ccs"
            pk_file = workdir / f"{ccs.name}.pk"
            vk_file = workdir / f"{ccs.name}.vk"
            ccs_file.write_bytes(ccs.serialize())

            cmd = [
                self.executable, 'setup',
                '--curve', ccs.curve.value,
                '--ccs', str(ccs_file),
                '--pk', str(pk_file),
                '--vk', str(vk_file),
            ] + self.extra_args
            self._run(cmd, TrustedSetupError, f"setup {ccs.name}")

            try:
                pk = ProvingKey.deserialize(pk_file.read_bytes(), ccs.curve)
                vk = VerifyingKey.deserialize(vk_file.read_bytes(), ccs.curve)
            except FileNotFoundError as e:
                raise TrustedSetupError(
                    f"{self.executable} did not write its keys: {e}") from e
            except DeserializationError as e:
                raise TrustedSetupError(
                    f"{self.executable} wrote unreadable keys: {e}") from e
            return pk, vk

    def _run(self, cmd: List[str], error_cls, what: str):
        logger.info(f"Running {' '.join(cmd)}")
        try:
            result = subprocess.run(
                cmd, capture_output=True, text=True, timeout=self.timeout)
        except FileNotFoundError as e:
            raise error_cls(f"{what}: executable not found: {self.executable}") from e
        except subprocess.TimeoutExpired as e:
            raise error_cls(f"{what}: timed out after {self.timeout}s") from e

        if result.returncode != 0:
            raise error_cls(
                f"{what} failed ({result.returncode}): {result.stderr.strip()}")
        if result.stdout:
            logger.debug(result.stdout.strip())


def create_backend(kind: str, setup_seed: Optional[str] = None,
                   executable: Optional[str] = None, timeout: int = 3600) -> ProofBackend:
    """Build the backend named in the configuration"""
    if kind == ReferenceBackend.name:
        if setup_seed is not None:
            logger.warning(
                "Seeded setup: keys are reproducible and must not be used in production")
        return ReferenceBackend(setup_seed=setup_seed)
    if kind == ExternalToolBackend.name:
        if not executable:
            raise ValueError("external backend needs an executable")
        return ExternalToolBackend(executable, timeout=timeout)
    raise ValueError(f"Unknown backend: {kind}")
