"""
Verification-key adapter.

Turns a Groth16 verifying key produced over one curve into constant data
that a circuit over another curve can embed. Two embeddings exist:

- native: the source curve's base field *is* the target curve's scalar
  field (BLS12-377 -> BW6-761), so every coordinate is one circuit variable;
- emulated: the target circuit carries non-native field arithmetic for the
  source curve, and every coordinate is split into 64-bit limbs.

The byte size of the result depends only on the curve pair and on the
number of public inputs of the inner circuit, never on the key's values.
"""

import logging
import struct
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from utils.utils import compute_hash
from zk.artifacts import VerifyingKey, pack_envelope, unpack_envelope
from zk.curves import Curve
from zk.errors import ConversionError, DeserializationError

logger = logging.getLogger(__name__)

# Curves for which an emulated (non-native) pairing gadget exists
EMULATED_SOURCES = frozenset({Curve.BN254, Curve.BLS12_381, Curve.BW6_761})
EMULATED_LIMB_BITS = 64

_FIXED_HEADER = struct.Struct(">BBHHHH")


class Embedding(Enum):
    NATIVE = "native"
    EMULATED = "emulated"


_EMBEDDING_CODES = {Embedding.NATIVE: 0, Embedding.EMULATED: 1}


def embedding_for(source: Curve, target: Curve) -> Embedding:
    """Pick how source-curve points are represented inside target-curve circuits"""
    if source.params.base_modulus == target.params.scalar_modulus:
        return Embedding.NATIVE
    if source != target and source in EMULATED_SOURCES:
        return Embedding.EMULATED
    raise ConversionError(
        f"no in-circuit arithmetic for {source.value} keys inside {target.value} circuits")


def _split(value: int, limb_bits: int, count: int) -> List[int]:
    """Little-endian limb decomposition"""
    mask = (1 << limb_bits) - 1
    return [(value >> (i * limb_bits)) & mask for i in range(count)]


@dataclass(frozen=True)
class FixedVerifyingKey:
    """Verifying key re-encoded as circuit constants over the target curve"""
    source: Curve
    target: Curve
    embedding: Embedding
    limb_bits: int
    limbs_per_element: int
    nb_public: int
    nb_commitments: int
    limbs: Tuple[int, ...]

    MAGIC = b"ZFVK"

    @property
    def limb_bytes(self) -> int:
        return (self.limb_bits + 7) // 8

    def shape(self) -> Dict[str, Any]:
        """Everything about the key except its values"""
        return {
            "source": self.source.value,
            "target": self.target.value,
            "embedding": self.embedding.value,
            "limb_bits": self.limb_bits,
            "limbs_per_element": self.limbs_per_element,
            "nb_public": self.nb_public,
            "nb_commitments": self.nb_commitments,
            "nb_limbs": len(self.limbs),
        }

    def describe(self) -> Dict[str, Any]:
        description = self.shape()
        description["limbs"] = [format(limb, "x") for limb in self.limbs]
        return description

    def serialize(self) -> bytes:
        payload = bytearray(_FIXED_HEADER.pack(
            self.source.params.tag,
            _EMBEDDING_CODES[self.embedding],
            self.limb_bits,
            self.limbs_per_element,
            self.nb_public,
            self.nb_commitments,
        ))
        for limb in self.limbs:
            payload += limb.to_bytes(self.limb_bytes, "big")
        return pack_envelope(self.MAGIC, self.target, bytes(payload))

    @classmethod
    def deserialize(cls, data: bytes, expected_target: Optional[Curve] = None) -> "FixedVerifyingKey":
        target, payload = unpack_envelope(
            data, cls.MAGIC, expected_target, "fixed verifying key")
        if len(payload) < _FIXED_HEADER.size:
            raise DeserializationError("fixed verifying key: truncated payload")

        source_tag, code, limb_bits, per, nb_public, nb_commitments = \
            _FIXED_HEADER.unpack_from(payload)
        try:
            source = Curve.from_tag(source_tag)
            embedding = next(e for e, c in _EMBEDDING_CODES.items() if c == code)
        except (ValueError, StopIteration) as e:
            raise DeserializationError(f"fixed verifying key: bad header: {e}") from e

        width = (limb_bits + 7) // 8
        body = payload[_FIXED_HEADER.size:]
        if width == 0 or len(body) % width:
            raise DeserializationError("fixed verifying key: ragged limb data")
        limbs = tuple(
            int.from_bytes(body[i:i + width], "big")
            for i in range(0, len(body), width)
        )
        return cls(source, target, embedding, limb_bits, per,
                   nb_public, nb_commitments, limbs)

    def digest(self) -> str:
        return compute_hash(self.serialize())


def fix(verifying_key: VerifyingKey, source_curve: Curve, target_curve: Curve) -> FixedVerifyingKey:
    """Embed verifying_key (over source_curve) as constants of a target_curve circuit"""
    if verifying_key.curve != source_curve:
        raise ConversionError(
            f"verifying key is over {verifying_key.curve.value}, "
            f"adapter expects {source_curve.value}")

    embedding = embedding_for(source_curve, target_curve)

    try:
        verifying_key.check_layout()
    except ValueError as e:
        raise ConversionError(f"malformed verifying key: {e}") from e

    params = source_curve.params
    if embedding is Embedding.NATIVE:
        limb_bits, per = params.base_bits, 1
    else:
        limb_bits = EMULATED_LIMB_BITS
        per = -(-params.base_bits // EMULATED_LIMB_BITS)

    limbs: List[int] = []
    for i, value in enumerate(verifying_key.elements()):
        if not 0 <= value < params.base_modulus:
            raise ConversionError(
                f"coordinate {i} is not reduced modulo the {source_curve.value} base field")
        limbs.extend(_split(value, limb_bits, per))

    fixed = FixedVerifyingKey(
        source=source_curve,
        target=target_curve,
        embedding=embedding,
        limb_bits=limb_bits,
        limbs_per_element=per,
        nb_public=verifying_key.nb_public,
        nb_commitments=verifying_key.nb_commitments,
        limbs=tuple(limbs),
    )
    logger.debug(
        f"Fixed {source_curve.value} vk into {target_curve.value} "
        f"({embedding.value}, {len(limbs)} limbs)")
    return fixed
