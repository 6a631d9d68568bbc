import pytest

from recursion.vk_adapter import Embedding, FixedVerifyingKey, embedding_for, fix
from zk.curves import Curve
from zk.errors import ConversionError, DeserializationError


def test_native_embedding_keeps_one_limb_per_coordinate(vk_factory):
    vk = vk_factory(Curve.BLS12_377, nb_public=2)
    fixed = fix(vk, Curve.BLS12_377, Curve.BW6_761)

    assert fixed.embedding is Embedding.NATIVE
    assert fixed.limbs_per_element == 1
    assert fixed.limbs == tuple(vk.elements())
    assert fixed.nb_public == 2
    assert fixed.target is Curve.BW6_761


def test_emulated_embedding_splits_into_64_bit_limbs(vk_factory):
    vk = vk_factory(Curve.BN254, nb_public=1)
    values = list(vk.elements())
    values[0] = (1 << 64) + 5
    vk = type(vk)(
        curve=vk.curve,
        alpha_g1=(values[0], values[1]),
        beta_g2=vk.beta_g2,
        gamma_g2=vk.gamma_g2,
        delta_g2=vk.delta_g2,
        k=vk.k,
    )

    fixed = fix(vk, Curve.BN254, Curve.BLS12_377)

    assert fixed.embedding is Embedding.EMULATED
    assert fixed.limb_bits == 64
    assert fixed.limbs_per_element == 4
    assert fixed.limbs[:4] == (5, 1, 0, 0)
    assert len(fixed.limbs) == 4 * len(values)


def test_bw6_key_into_bn254_is_emulated(vk_factory):
    fixed = fix(vk_factory(Curve.BW6_761), Curve.BW6_761, Curve.BN254)
    assert fixed.embedding is Embedding.EMULATED
    assert fixed.limbs_per_element == 12


def test_fix_is_deterministic(vk_factory):
    vk = vk_factory(Curve.BLS12_377)
    first = fix(vk, Curve.BLS12_377, Curve.BW6_761).serialize()
    second = fix(vk, Curve.BLS12_377, Curve.BW6_761).serialize()
    assert first == second


def test_fixed_size_does_not_depend_on_key_values(vk_factory):
    small = fix(vk_factory(Curve.BN254, start=1), Curve.BN254, Curve.BLS12_377)
    large = fix(vk_factory(Curve.BN254, start=10 ** 70), Curve.BN254, Curve.BLS12_377)

    assert small.shape() == large.shape()
    assert len(small.serialize()) == len(large.serialize())
    assert small.digest() != large.digest()


@pytest.mark.parametrize("source,target", [
    (Curve.BLS12_377, Curve.BN254),
    (Curve.BLS12_377, Curve.BLS12_377),
    (Curve.BN254, Curve.BN254),
    (Curve.BW6_761, Curve.BW6_761),
])
def test_incompatible_curve_pairs_rejected(source, target):
    with pytest.raises(ConversionError):
        embedding_for(source, target)


def test_key_over_wrong_curve_rejected(vk_factory):
    vk = vk_factory(Curve.BLS12_377)
    with pytest.raises(ConversionError, match="adapter expects bn254"):
        fix(vk, Curve.BN254, Curve.BLS12_377)


def test_unreduced_coordinate_rejected(vk_factory):
    vk = vk_factory(Curve.BN254)
    bad = type(vk)(
        curve=vk.curve,
        alpha_g1=(Curve.BN254.params.base_modulus, 1),
        beta_g2=vk.beta_g2,
        gamma_g2=vk.gamma_g2,
        delta_g2=vk.delta_g2,
        k=vk.k,
    )
    with pytest.raises(ConversionError, match="not reduced"):
        fix(bad, Curve.BN254, Curve.BLS12_377)


def test_fixed_key_survives_serialization(vk_factory):
    fixed = fix(vk_factory(Curve.BN254, nb_public=3), Curve.BN254, Curve.BLS12_377)
    restored = FixedVerifyingKey.deserialize(fixed.serialize(), Curve.BLS12_377)
    assert restored == fixed

    with pytest.raises(DeserializationError):
        FixedVerifyingKey.deserialize(fixed.serialize(), Curve.BW6_761)
