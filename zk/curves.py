"""
Pairing-friendly curves used across the recursion chain.

Only the facts the orchestration layer needs are kept here: field moduli,
coordinate counts and the one-byte tag written into every artifact header.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict


class Curve(Enum):
    """Curves a constraint system or key can be defined over"""
    BN254 = "bn254"
    BLS12_377 = "bls12_377"
    BLS12_381 = "bls12_381"
    BW6_761 = "bw6_761"

    @classmethod
    def parse(cls, name: str) -> "Curve":
        """Accept library spellings (bn128, BLS12-377, bw6-761, ...)"""
        key = name.strip().lower().replace("-", "_")
        if key in _ALIASES:
            return _ALIASES[key]
        for curve in cls:
            if curve.value == key:
                return curve
        raise ValueError(f"Unknown curve: {name}")

    @classmethod
    def from_tag(cls, tag: int) -> "Curve":
        for curve, params in CURVE_PARAMS.items():
            if params.tag == tag:
                return curve
        raise ValueError(f"Unknown curve tag: {tag}")

    @property
    def params(self) -> "CurveParams":
        return CURVE_PARAMS[self]


@dataclass(frozen=True)
class CurveParams:
    tag: int
    scalar_modulus: int
    base_modulus: int
    # 2 for curves whose G2 lives over Fp2, 1 for BW6-761 (G2 over Fp)
    g2_degree: int

    @property
    def base_bits(self) -> int:
        return self.base_modulus.bit_length()

    @property
    def base_bytes(self) -> int:
        return (self.base_bits + 7) // 8

    @property
    def scalar_bits(self) -> int:
        return self.scalar_modulus.bit_length()

    @property
    def g1_coordinates(self) -> int:
        return 2

    @property
    def g2_coordinates(self) -> int:
        return 2 * self.g2_degree


CURVE_PARAMS: Dict[Curve, CurveParams] = {
    Curve.BN254: CurveParams(
        tag=1,
        scalar_modulus=21888242871839275222246405745257275088548364400416034343698204186575808495617,
        base_modulus=21888242871839275222246405745257275088696311157297823662689037894645226208583,
        g2_degree=2,
    ),
    Curve.BLS12_377: CurveParams(
        tag=2,
        scalar_modulus=0x12ab655e9a2ca55660b44d1e5c37b00159aa76fed00000010a11800000000001,
        base_modulus=0x01ae3a4617c510eac63b05c06ca1493b1a22d9f300f5138f1ef3622fba094800170b5d44300000008508c00000000001,
        g2_degree=2,
    ),
    Curve.BLS12_381: CurveParams(
        tag=3,
        scalar_modulus=0x73eda753299d7d483339d80809a1d80553bda402fffe5bfeffffffff00000001,
        base_modulus=0x1a0111ea397fe69a4b1ba7b6434bacd764774b84f38512bf6730d2a0f6b0f6241eabfffeb153ffffb9feffffaaab,
        g2_degree=2,
    ),
    Curve.BW6_761: CurveParams(
        tag=4,
        scalar_modulus=0x01ae3a4617c510eac63b05c06ca1493b1a22d9f300f5138f1ef3622fba094800170b5d44300000008508c00000000001,
        base_modulus=0x122e824fb83ce0ad187c94004faff3eb926186a81d14688528275ef8087be41707ba638e584e91903cebaff25b423048689c8ed12f9fd9071dcd3dc73ebff2e98a116c25667a8f8160cf8aeeaf0a437e6913e6870000082f49d00000000008b,
        g2_degree=1,
    ),
}

_ALIASES: Dict[str, Curve] = {
    "bn128": Curve.BN254,
    "bn256": Curve.BN254,
    "altbn128": Curve.BN254,
    "alt_bn128": Curve.BN254,
    "bls12377": Curve.BLS12_377,
    "bls12381": Curve.BLS12_381,
    "bw6761": Curve.BW6_761,
}
