"""Stage compilers of the recursive vote circuit chain."""

from .circuits import (
    AGGREGATOR_CURVE,
    BALLOT_PROOF_CURVE,
    STATE_TRANSITION_CURVE,
    VOTE_VERIFIER_CURVE,
    VOTES_PER_BATCH,
    CircuitDefinition,
    RecursionSlot,
    StageOutput,
    compile_and_setup,
    compile_circuit,
)
from .voteverifier import compile_vote_verifier
from .dummy import compile_dummy, placeholder_with_constraints
from .aggregator import compile_aggregator
from .statetransition import compile_state_transition

__all__ = [
    'AGGREGATOR_CURVE',
    'BALLOT_PROOF_CURVE',
    'STATE_TRANSITION_CURVE',
    'VOTE_VERIFIER_CURVE',
    'VOTES_PER_BATCH',
    'CircuitDefinition',
    'RecursionSlot',
    'StageOutput',
    'compile_and_setup',
    'compile_circuit',
    'compile_vote_verifier',
    'compile_dummy',
    'placeholder_with_constraints',
    'compile_aggregator',
    'compile_state_transition',
]
