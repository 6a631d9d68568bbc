"""
Circuit descriptions handed to the proof-system backend.

A ``CircuitDefinition`` is what the backend compiles: its curve, its
public inputs and, for recursive circuits, one ``RecursionSlot`` per kind
of inner proof it verifies. A slot pairs the fixed verifying key(s) with
the placeholder set that fixes how many inner proofs are checked.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from recursion.placeholders import PlaceholderSet
from recursion.vk_adapter import Embedding, FixedVerifyingKey
from zk.artifacts import ConstraintSystem, ProvingKey, VerifyingKey
from zk.backend import ProofBackend
from zk.curves import Curve
from zk.errors import ShapeMismatchError

logger = logging.getLogger(__name__)

BALLOT_PROOF_CURVE = Curve.BN254
VOTE_VERIFIER_CURVE = Curve.BLS12_377
AGGREGATOR_CURVE = Curve.BW6_761
STATE_TRANSITION_CURVE = Curve.BN254

VOTES_PER_BATCH = 10

# Rough R1CS cost of one in-circuit Groth16 verification and of one
# public-input scalar multiplication, per embedding
PAIRING_CONSTRAINTS = {
    Embedding.NATIVE: 40_000,
    Embedding.EMULATED: 1_500_000,
}
PUBLIC_INPUT_CONSTRAINTS = {
    Embedding.NATIVE: 2_500,
    Embedding.EMULATED: 100_000,
}


@dataclass(frozen=True)
class RecursionSlot:
    """Inner proofs of one kind verified by a circuit"""
    placeholders: PlaceholderSet
    keys: Tuple[FixedVerifyingKey, ...]
    batch_size: int

    def describe(self) -> Dict[str, Any]:
        return {
            "batch_size": self.batch_size,
            "placeholders": self.placeholders.shape(),
            "keys": [key.describe() for key in self.keys],
        }


@dataclass
class CircuitDefinition:
    name: str
    curve: Curve
    public_inputs: Tuple[str, ...]
    recursion: Dict[str, RecursionSlot] = field(default_factory=dict)
    parameters: Dict[str, Any] = field(default_factory=dict)
    nb_commitments: int = 0
    base_constraints: int = 1

    def describe(self) -> Dict[str, Any]:
        """Everything the compiled constraint system depends on"""
        return {
            "name": self.name,
            "curve": self.curve.value,
            "public_inputs": list(self.public_inputs),
            "nb_commitments": self.nb_commitments,
            "base_constraints": self.base_constraints,
            "parameters": dict(self.parameters),
            "recursion": {
                slot_name: slot.describe()
                for slot_name, slot in sorted(self.recursion.items())
            },
        }

    def check_recursion(self):
        """Every recursion slot must carry a fixed key and a full placeholder set"""
        for slot_name, slot in self.recursion.items():
            where = f"{self.name}.{slot_name}"
            if not slot.keys:
                raise ShapeMismatchError(f"{where}: no fixed verifying key")
            if slot.placeholders.batch_size != slot.batch_size:
                raise ShapeMismatchError(
                    f"{where}: {slot.placeholders.batch_size} placeholders "
                    f"for a batch of {slot.batch_size}")
            for key in slot.keys:
                if key.target != self.curve:
                    raise ShapeMismatchError(
                        f"{where}: key fixed for {key.target.value} circuits, "
                        f"circuit is over {self.curve.value}")
                if key.source != slot.placeholders.curve:
                    raise ShapeMismatchError(
                        f"{where}: key verifies {key.source.value} proofs, "
                        f"placeholders are {slot.placeholders.curve.value} proofs")
                if key.nb_public != slot.placeholders.nb_public:
                    raise ShapeMismatchError(
                        f"{where}: key expects {key.nb_public} public inputs, "
                        f"placeholders carry {slot.placeholders.nb_public}")
                if key.nb_commitments != slot.placeholders.nb_commitments:
                    raise ShapeMismatchError(
                        f"{where}: key expects {key.nb_commitments} commitments, "
                        f"placeholders carry {slot.placeholders.nb_commitments}")

    def estimate_constraints(self) -> int:
        total = self.base_constraints + len(self.public_inputs)
        for slot in self.recursion.values():
            embedding = slot.keys[0].embedding if slot.keys else Embedding.NATIVE
            per_proof = PAIRING_CONSTRAINTS[embedding] + \
                slot.placeholders.nb_public * PUBLIC_INPUT_CONSTRAINTS[embedding]
            total += slot.batch_size * per_proof
            # selecting between several fixed keys costs one mux per limb
            if len(slot.keys) > 1:
                total += slot.batch_size * sum(len(key.limbs) for key in slot.keys)
        return total


@dataclass
class StageOutput:
    ccs: ConstraintSystem
    pk: Optional[ProvingKey] = None
    vk: Optional[VerifyingKey] = None


def check_key_binding(ccs: ConstraintSystem, vk: VerifyingKey, what: str):
    """A verifying key must come from the setup of the constraint system it travels with"""
    if vk.curve != ccs.curve:
        raise ShapeMismatchError(
            f"{what} verifying key is over {vk.curve.value}, "
            f"its constraint system over {ccs.curve.value}")
    if vk.nb_public != ccs.nb_public:
        raise ShapeMismatchError(
            f"{what} verifying key has {vk.nb_public} public inputs, "
            f"its constraint system {ccs.nb_public}")
    if vk.ccs_digest and vk.ccs_digest != ccs.digest():
        raise ShapeMismatchError(
            f"{what} verifying key was not set up for this constraint system")


def compile_circuit(backend: ProofBackend, circuit: CircuitDefinition) -> ConstraintSystem:
    circuit.check_recursion()
    logger.info(f"Compiling {circuit.name} circuit over {circuit.curve.value}")
    return backend.compile(circuit.curve, circuit)


def compile_and_setup(backend: ProofBackend, circuit: CircuitDefinition) -> StageOutput:
    ccs = compile_circuit(backend, circuit)
    pk, vk = backend.setup(ccs)
    return StageOutput(ccs, pk, vk)
