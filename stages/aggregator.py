"""Aggregator stage: verifies a fixed batch of vote-verifier (or dummy) proofs over BW6-761."""

import logging

from recursion.placeholders import fill, placeholder_proof, placeholder_witness
from recursion.vk_adapter import fix
from stages.circuits import (
    AGGREGATOR_CURVE,
    VOTE_VERIFIER_CURVE,
    VOTES_PER_BATCH,
    CircuitDefinition,
    RecursionSlot,
    check_key_binding,
    compile_circuit,
)
from zk.artifacts import ConstraintSystem, VerifyingKey
from zk.backend import ProofBackend

logger = logging.getLogger(__name__)

STAGE = "aggregator"


def aggregator_circuit(dummy_ccs: ConstraintSystem, dummy_vk: VerifyingKey,
                       base_vk: VerifyingKey,
                       votes_per_batch: int = VOTES_PER_BATCH) -> CircuitDefinition:
    check_key_binding(dummy_ccs, dummy_vk, "dummy")

    base_fixed = fix(base_vk, VOTE_VERIFIER_CURVE, AGGREGATOR_CURVE)
    dummy_fixed = fix(dummy_vk, VOTE_VERIFIER_CURVE, AGGREGATOR_CURVE)

    proofs = fill(placeholder_proof(dummy_ccs), placeholder_witness(dummy_ccs), votes_per_batch)
    slot = RecursionSlot(
        placeholders=proofs,
        keys=(base_fixed, dummy_fixed),
        batch_size=votes_per_batch,
    )
    return CircuitDefinition(
        name=STAGE,
        curve=AGGREGATOR_CURVE,
        public_inputs=("InputsHash",),
        recursion={"vote_proofs": slot},
        parameters={"votes_per_batch": votes_per_batch},
    )


def compile_aggregator(backend: ProofBackend, dummy_ccs: ConstraintSystem,
                       dummy_vk: VerifyingKey, base_vk: VerifyingKey,
                       votes_per_batch: int = VOTES_PER_BATCH) -> ConstraintSystem:
    """Compile the aggregator for batches of votes_per_batch proofs"""
    circuit = aggregator_circuit(dummy_ccs, dummy_vk, base_vk, votes_per_batch)
    logger.info(f"Aggregator batch size: {votes_per_batch}")
    return compile_circuit(backend, circuit)
