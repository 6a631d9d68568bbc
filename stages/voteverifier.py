"""Vote-verifier stage: recursively verifies one circom ballot proof over BLS12-377."""

import logging
from typing import Any, Mapping, Union

from recursion.placeholders import fill, placeholders_for_key
from recursion.vk_adapter import fix
from stages.circuits import (
    BALLOT_PROOF_CURVE,
    VOTE_VERIFIER_CURVE,
    CircuitDefinition,
    RecursionSlot,
    compile_circuit,
)
from zk.artifacts import ConstraintSystem, VerifyingKey
from zk.backend import ProofBackend
from zk.circom import parse_snarkjs_vkey

logger = logging.getLogger(__name__)

STAGE = "voteverifier"
BALLOT_PROOFS = 1


def vote_verifier_circuit(ballot_vk: VerifyingKey) -> CircuitDefinition:
    fixed = fix(ballot_vk, BALLOT_PROOF_CURVE, VOTE_VERIFIER_CURVE)
    proof, witness = placeholders_for_key(ballot_vk)
    slot = RecursionSlot(
        placeholders=fill(proof, witness, BALLOT_PROOFS),
        keys=(fixed,),
        batch_size=BALLOT_PROOFS,
    )
    return CircuitDefinition(
        name=STAGE,
        curve=VOTE_VERIFIER_CURVE,
        public_inputs=("InputsHash",),
        recursion={"ballot_proof": slot},
        parameters={
            "ballot_proofs": BALLOT_PROOFS,
            "ballot_nb_public": ballot_vk.nb_public,
        },
        nb_commitments=1,
    )


def compile_vote_verifier(backend: ProofBackend,
                          ballot_vkey: Union[bytes, str, Mapping[str, Any], VerifyingKey]) -> ConstraintSystem:
    """Compile the vote verifier against a snarkjs ballot-proof verifying key"""
    if isinstance(ballot_vkey, VerifyingKey):
        ballot_vk = ballot_vkey
    else:
        ballot_vk = parse_snarkjs_vkey(ballot_vkey, BALLOT_PROOF_CURVE)
    logger.debug(f"Ballot proof key has {ballot_vk.nb_public} public inputs")
    return compile_circuit(backend, vote_verifier_circuit(ballot_vk))
