"""
Dummy stage.

A trivial circuit with the same public-input and commitment layout as an
inner circuit. Its proofs pad aggregator batches that are not full, so its
verifying key is the aggregator's second fixed key.
"""

import logging

from stages.circuits import (
    VOTE_VERIFIER_CURVE,
    CircuitDefinition,
    StageOutput,
    compile_and_setup,
)
from zk.artifacts import ConstraintSystem
from zk.backend import ProofBackend
from zk.curves import Curve

logger = logging.getLogger(__name__)

STAGE = "dummy"
DUMMY_CURVE = VOTE_VERIFIER_CURVE


def _public_inputs(count: int):
    return tuple(f"Public{i}" for i in range(count))


def placeholder_circuit(inner_ccs: ConstraintSystem, curve: Curve = DUMMY_CURVE) -> CircuitDefinition:
    """Dummy circuit mirroring inner_ccs"""
    return CircuitDefinition(
        name=STAGE,
        curve=curve,
        public_inputs=_public_inputs(inner_ccs.nb_public),
        parameters={
            "mirrors": inner_ccs.name,
            "inner_curve": inner_ccs.curve.value,
        },
        nb_commitments=inner_ccs.nb_commitments,
    )


def placeholder_with_constraints(nb_constraints: int, curve: Curve = DUMMY_CURVE,
                                 nb_public: int = 1) -> CircuitDefinition:
    """Standalone dummy circuit, used to stand in for a real inner stage"""
    if nb_constraints < 1:
        raise ValueError("a dummy circuit needs at least one constraint")
    return CircuitDefinition(
        name=STAGE,
        curve=curve,
        public_inputs=_public_inputs(nb_public),
        parameters={"constraints": nb_constraints},
        base_constraints=nb_constraints,
    )


def compile_dummy(backend: ProofBackend, inner_ccs: ConstraintSystem,
                  curve: Curve = DUMMY_CURVE) -> StageOutput:
    """Compile and set up the dummy circuit for inner_ccs"""
    output = compile_and_setup(backend, placeholder_circuit(inner_ccs, curve))
    logger.debug(
        f"Dummy circuit mirrors {inner_ccs.name}: {output.ccs.nb_public} public inputs")
    return output
