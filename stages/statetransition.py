"""State-transition stage: verifies one aggregator proof over BN254."""

from recursion.placeholders import fill, placeholder_proof, placeholder_witness
from recursion.vk_adapter import fix
from stages.circuits import (
    AGGREGATOR_CURVE,
    STATE_TRANSITION_CURVE,
    CircuitDefinition,
    RecursionSlot,
    check_key_binding,
    compile_circuit,
)
from zk.artifacts import ConstraintSystem, VerifyingKey
from zk.backend import ProofBackend

STAGE = "statetransition"
AGGREGATOR_PROOFS = 1

PUBLIC_INPUTS = ("RootHashBefore", "RootHashAfter", "NumNewVotes", "NumOverwrites")


def state_transition_circuit(aggregator_ccs: ConstraintSystem,
                             aggregator_vk: VerifyingKey) -> CircuitDefinition:
    check_key_binding(aggregator_ccs, aggregator_vk, "aggregator")

    fixed = fix(aggregator_vk, AGGREGATOR_CURVE, STATE_TRANSITION_CURVE)
    proofs = fill(placeholder_proof(aggregator_ccs), placeholder_witness(aggregator_ccs),
                  AGGREGATOR_PROOFS)
    return CircuitDefinition(
        name=STAGE,
        curve=STATE_TRANSITION_CURVE,
        public_inputs=PUBLIC_INPUTS,
        recursion={
            "aggregator_proof": RecursionSlot(proofs, (fixed,), AGGREGATOR_PROOFS),
        },
        parameters={"aggregator_proofs": AGGREGATOR_PROOFS},
        nb_commitments=1,
    )


def compile_state_transition(backend: ProofBackend, aggregator_ccs: ConstraintSystem,
                             aggregator_vk: VerifyingKey) -> ConstraintSystem:
    return compile_circuit(backend, state_transition_circuit(aggregator_ccs, aggregator_vk))
