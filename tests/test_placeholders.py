import pytest

from recursion.placeholders import (
    ProofPlaceholder,
    WitnessPlaceholder,
    fill,
    placeholder_proof,
    placeholder_witness,
    placeholders_for_key,
)
from zk.artifacts import ConstraintSystem
from zk.curves import Curve
from zk.errors import ShapeMismatchError


@pytest.fixture
def inner_ccs():
    return ConstraintSystem(
        curve=Curve.BLS12_377,
        name="voteverifier",
        nb_public=3,
        nb_commitments=1,
        nb_constraints=100,
        shape={},
    )


def test_fill_repeats_template(inner_ccs):
    placeholders = fill(placeholder_proof(inner_ccs), placeholder_witness(inner_ccs), 10)

    assert len(placeholders) == 10
    assert placeholders.batch_size == 10
    assert len(set(placeholders)) == 1
    assert placeholders.curve is Curve.BLS12_377
    assert placeholders.nb_public == 3
    assert placeholders.nb_commitments == 1


@pytest.mark.parametrize("count", [0, -1, True, 2.0])
def test_fill_rejects_invalid_counts(inner_ccs, count):
    with pytest.raises(ShapeMismatchError):
        fill(placeholder_proof(inner_ccs), placeholder_witness(inner_ccs), count)


def test_fill_rejects_mixed_curves():
    with pytest.raises(ShapeMismatchError):
        fill(ProofPlaceholder(Curve.BLS12_377), WitnessPlaceholder(Curve.BW6_761, 1), 1)


def test_shape_ignores_placeholder_values(inner_ccs):
    zeros = fill(placeholder_proof(inner_ccs, 0), placeholder_witness(inner_ccs, 0), 4)
    ones = fill(placeholder_proof(inner_ccs, 1), placeholder_witness(inner_ccs, 1), 4)

    assert zeros != ones
    assert zeros.shape() == ones.shape()
    assert ones.entries[0].witness.values == (1, 1, 1)


def test_templates_from_verifying_key(vk_factory):
    proof, witness = placeholders_for_key(vk_factory(Curve.BN254, nb_public=2))
    assert proof.curve is Curve.BN254
    assert witness.nb_public == 2
    assert proof.shape()["g1_points"] == 2
