"""
Serializable proof-system artifacts.

Constraint systems and Groth16 keys are modelled as tagged byte buffers:

    magic (4) | format version (1) | curve tag (1) | payload length (4, BE) | payload

Nothing outside this module looks inside a payload except through the
parsed dataclass fields, and a buffer is only ever accepted for the curve
the caller expects.
"""

import json
import struct
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from utils.utils import compute_hash
from zk.curves import Curve
from zk.errors import DeserializationError

FORMAT_VERSION = 1

_HEADER = struct.Struct(">4sBBI")
_VK_COUNTS = struct.Struct(">HH")
_PK_HEADER = struct.Struct(">32sQ")
_DIGEST_BYTES = 32


def canonical_json(obj: Any) -> bytes:
    """Deterministic JSON bytes (sorted keys, no whitespace)"""
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def pack_envelope(magic: bytes, curve: Curve, payload: bytes) -> bytes:
    return _HEADER.pack(magic, FORMAT_VERSION, curve.params.tag, len(payload)) + payload


def unpack_envelope(data: bytes, magic: bytes, expected_curve: Optional[Curve],
                    kind: str) -> Tuple[Curve, bytes]:
    """Validate the header and return (curve, payload)"""
    if len(data) < _HEADER.size:
        raise DeserializationError(
            f"{kind}: truncated header ({len(data)} bytes)")

    found_magic, version, tag, length = _HEADER.unpack_from(data)
    if found_magic != magic:
        raise DeserializationError(
            f"{kind}: bad magic {found_magic!r}, expected {magic!r}")
    if version != FORMAT_VERSION:
        raise DeserializationError(
            f"{kind}: unsupported format version {version}")

    try:
        curve = Curve.from_tag(tag)
    except ValueError as e:
        raise DeserializationError(f"{kind}: {e}") from e

    if expected_curve is not None and curve != expected_curve:
        raise DeserializationError(
            f"{kind}: encoded for {curve.value}, expected {expected_curve.value}")

    payload = data[_HEADER.size:]
    if len(payload) != length:
        raise DeserializationError(
            f"{kind}: payload is {len(payload)} bytes, header declares {length}")

    return curve, payload


def _digest_bytes(digest: str) -> bytes:
    return bytes.fromhex(digest) if digest else bytes(_DIGEST_BYTES)


def _digest_hex(raw: bytes) -> str:
    return "" if raw == bytes(_DIGEST_BYTES) else raw.hex()


@dataclass(frozen=True)
class ConstraintSystem:
    """Compiled circuit over exactly one scalar field"""
    curve: Curve
    name: str
    nb_public: int
    nb_commitments: int
    nb_constraints: int
    shape: Dict[str, Any]

    MAGIC = b"ZCCS"

    def serialize(self) -> bytes:
        payload = canonical_json({
            "name": self.name,
            "nb_public": self.nb_public,
            "nb_commitments": self.nb_commitments,
            "nb_constraints": self.nb_constraints,
            "shape": self.shape,
        })
        return pack_envelope(self.MAGIC, self.curve, payload)

    @classmethod
    def deserialize(cls, data: bytes, expected_curve: Optional[Curve] = None) -> "ConstraintSystem":
        curve, payload = unpack_envelope(
            data, cls.MAGIC, expected_curve, "constraint system")
        try:
            body = json.loads(payload.decode("utf-8"))
            return cls(
                curve=curve,
                name=str(body["name"]),
                nb_public=int(body["nb_public"]),
                nb_commitments=int(body["nb_commitments"]),
                nb_constraints=int(body["nb_constraints"]),
                shape=dict(body["shape"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DeserializationError(
                f"constraint system: malformed payload: {e}") from e

    def digest(self) -> str:
        return compute_hash(self.serialize())


@dataclass(frozen=True)
class VerifyingKey:
    """Groth16 verifying key; G2 coordinates are flattened (c0, c1 per Fp2 element)"""
    curve: Curve
    alpha_g1: Tuple[int, ...]
    beta_g2: Tuple[int, ...]
    gamma_g2: Tuple[int, ...]
    delta_g2: Tuple[int, ...]
    k: Tuple[Tuple[int, ...], ...]
    nb_commitments: int = 0
    ccs_digest: str = ""

    MAGIC = b"ZGVK"

    @property
    def nb_public(self) -> int:
        """Public inputs verified by this key (K carries one extra base point)"""
        return len(self.k) - 1

    def elements(self) -> List[int]:
        """All base-field coordinates in wire order"""
        values = list(self.alpha_g1) + list(self.beta_g2) + \
            list(self.gamma_g2) + list(self.delta_g2)
        for point in self.k:
            values.extend(point)
        return values

    def check_layout(self):
        params = self.curve.params
        if len(self.alpha_g1) != params.g1_coordinates:
            raise ValueError("alpha must be a G1 point")
        for name in ("beta_g2", "gamma_g2", "delta_g2"):
            if len(getattr(self, name)) != params.g2_coordinates:
                raise ValueError(
                    f"{name} must have {params.g2_coordinates} coordinates on {self.curve.value}")
        if not self.k:
            raise ValueError("K must contain at least the constant term")
        for point in self.k:
            if len(point) != params.g1_coordinates:
                raise ValueError("K entries must be G1 points")

    def serialize(self) -> bytes:
        self.check_layout()
        width = self.curve.params.base_bytes

        out = bytearray(_VK_COUNTS.pack(len(self.k), self.nb_commitments))
        out += _digest_bytes(self.ccs_digest)
        for value in self.elements():
            if value < 0 or value.bit_length() > width * 8:
                raise ValueError(
                    f"coordinate does not fit in {width} bytes")
            out += value.to_bytes(width, "big")

        return pack_envelope(self.MAGIC, self.curve, bytes(out))

    @classmethod
    def deserialize(cls, data: bytes, expected_curve: Optional[Curve] = None) -> "VerifyingKey":
        curve, payload = unpack_envelope(
            data, cls.MAGIC, expected_curve, "verifying key")
        params = curve.params
        width = params.base_bytes

        prefix = _VK_COUNTS.size + _DIGEST_BYTES
        if len(payload) < prefix:
            raise DeserializationError("verifying key: truncated payload")

        nb_k, nb_commitments = _VK_COUNTS.unpack_from(payload)
        if nb_k < 1:
            raise DeserializationError("verifying key: empty K")

        g1 = params.g1_coordinates
        g2 = params.g2_coordinates
        expected = prefix + (g1 + 3 * g2 + nb_k * g1) * width
        if len(payload) != expected:
            raise DeserializationError(
                f"verifying key: payload is {len(payload)} bytes, expected {expected}")

        ccs_digest = _digest_hex(payload[_VK_COUNTS.size:prefix])
        values = [
            int.from_bytes(payload[offset:offset + width], "big")
            for offset in range(prefix, len(payload), width)
        ]

        def take(n: int) -> Tuple[int, ...]:
            chunk = tuple(values[:n])
            del values[:n]
            return chunk

        alpha = take(g1)
        beta = take(g2)
        gamma = take(g2)
        delta = take(g2)
        k = tuple(take(g1) for _ in range(nb_k))

        return cls(
            curve=curve,
            alpha_g1=alpha,
            beta_g2=beta,
            gamma_g2=gamma,
            delta_g2=delta,
            k=k,
            nb_commitments=nb_commitments,
            ccs_digest=ccs_digest,
        )

    def digest(self) -> str:
        return compute_hash(self.serialize())


@dataclass(frozen=True)
class ProvingKey:
    """Groth16 proving key bound to the constraint system it was set up for"""
    curve: Curve
    ccs_digest: str
    nb_constraints: int
    material: bytes

    MAGIC = b"ZGPK"

    def serialize(self) -> bytes:
        payload = _PK_HEADER.pack(_digest_bytes(self.ccs_digest), self.nb_constraints) + self.material
        return pack_envelope(self.MAGIC, self.curve, payload)

    @classmethod
    def deserialize(cls, data: bytes, expected_curve: Optional[Curve] = None) -> "ProvingKey":
        curve, payload = unpack_envelope(
            data, cls.MAGIC, expected_curve, "proving key")
        if len(payload) < _PK_HEADER.size:
            raise DeserializationError("proving key: truncated payload")
        raw_digest, nb_constraints = _PK_HEADER.unpack_from(payload)
        return cls(
            curve=curve,
            ccs_digest=_digest_hex(raw_digest),
            nb_constraints=nb_constraints,
            material=payload[_PK_HEADER.size:],
        )

    def digest(self) -> str:
        return compute_hash(self.serialize())


# File extension -> artifact type
ARTIFACT_TYPES = {
    "ccs": ConstraintSystem,
    "pk": ProvingKey,
    "vk": VerifyingKey,
}
