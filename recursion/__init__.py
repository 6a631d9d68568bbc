"""Recursion primitives: verifying-key fixing and placeholder filling."""

from .vk_adapter import Embedding, FixedVerifyingKey, embedding_for, fix
from .placeholders import (
    PlaceholderSet,
    ProofPlaceholder,
    WitnessPlaceholder,
    fill,
    placeholder_proof,
    placeholder_witness,
    placeholders_for_key,
)

__all__ = [
    'Embedding',
    'FixedVerifyingKey',
    'embedding_for',
    'fix',
    'PlaceholderSet',
    'ProofPlaceholder',
    'WitnessPlaceholder',
    'fill',
    'placeholder_proof',
    'placeholder_witness',
    'placeholders_for_key',
]
