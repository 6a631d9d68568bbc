"""
Placeholder filler.

A recursive circuit is compiled before any real inner proof exists, so each
inner proof slot is filled with an inert placeholder of the right shape.
Placeholder values never reach the constraint system: only ``shape()`` is
visible to the compiler.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Tuple

from zk.artifacts import ConstraintSystem, VerifyingKey
from zk.curves import Curve
from zk.errors import ShapeMismatchError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProofPlaceholder:
    """Groth16 proof (Ar, Bs, Krs and one G1 point per commitment)"""
    curve: Curve
    nb_commitments: int = 0
    fill_value: int = 0

    def shape(self) -> Dict[str, Any]:
        return {
            "curve": self.curve.value,
            "g1_points": 2 + self.nb_commitments,
            "g2_points": 1,
            "nb_commitments": self.nb_commitments,
        }


@dataclass(frozen=True)
class WitnessPlaceholder:
    """Public witness of one inner proof"""
    curve: Curve
    nb_public: int
    fill_value: int = 0

    @property
    def values(self) -> Tuple[int, ...]:
        return (self.fill_value,) * self.nb_public

    def shape(self) -> Dict[str, Any]:
        return {"curve": self.curve.value, "nb_public": self.nb_public}


@dataclass(frozen=True)
class PlaceholderEntry:
    proof: ProofPlaceholder
    witness: WitnessPlaceholder


@dataclass(frozen=True)
class PlaceholderSet:
    """Fixed-length run of identical placeholder entries"""
    entries: Tuple[PlaceholderEntry, ...]

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[PlaceholderEntry]:
        return iter(self.entries)

    @property
    def batch_size(self) -> int:
        return len(self.entries)

    @property
    def curve(self) -> Curve:
        return self.entries[0].proof.curve

    @property
    def nb_public(self) -> int:
        return self.entries[0].witness.nb_public

    @property
    def nb_commitments(self) -> int:
        return self.entries[0].proof.nb_commitments

    def shape(self) -> Dict[str, Any]:
        first = self.entries[0]
        return {
            "batch_size": self.batch_size,
            "proof": first.proof.shape(),
            "witness": first.witness.shape(),
        }


def placeholder_proof(ccs: ConstraintSystem, fill_value: int = 0) -> ProofPlaceholder:
    return ProofPlaceholder(ccs.curve, ccs.nb_commitments, fill_value)


def placeholder_witness(ccs: ConstraintSystem, fill_value: int = 0) -> WitnessPlaceholder:
    return WitnessPlaceholder(ccs.curve, ccs.nb_public, fill_value)


def placeholders_for_key(vk: VerifyingKey, fill_value: int = 0) -> Tuple[ProofPlaceholder, WitnessPlaceholder]:
    """Templates for proofs checked by vk when no constraint system is at hand"""
    return (ProofPlaceholder(vk.curve, vk.nb_commitments, fill_value),
            WitnessPlaceholder(vk.curve, vk.nb_public, fill_value))


def fill(template_proof: ProofPlaceholder, template_witness: WitnessPlaceholder,
         count: int) -> PlaceholderSet:
    """Repeat one proof/witness template count times"""
    if isinstance(count, bool) or not isinstance(count, int) or count < 1:
        raise ShapeMismatchError(f"placeholder count must be a positive integer, got {count!r}")
    if template_proof.curve != template_witness.curve:
        raise ShapeMismatchError(
            f"proof template is over {template_proof.curve.value}, "
            f"witness template over {template_witness.curve.value}")

    entry = PlaceholderEntry(template_proof, template_witness)
    logger.debug(
        f"Filled {count} placeholder(s) over {template_proof.curve.value} "
        f"({template_witness.nb_public} public inputs)")
    return PlaceholderSet((entry,) * count)
