"""
Import of circom/snarkjs Groth16 verifying keys.

The ballot proof is produced by a circom circuit, so its verifying key
arrives as the JSON that ``snarkjs zkey export verificationkey`` writes:

    {
      "protocol": "groth16",
      "curve": "bn128",
      "nPublic": 2,
      "vk_alpha_1": ["x", "y", "1"],
      "vk_beta_2":  [["x0", "x1"], ["y0", "y1"], ["1", "0"]],
      "vk_gamma_2": ...,
      "vk_delta_2": ...,
      "IC": [["x", "y", "1"], ...]
    }
"""

import json
import re
from typing import Any, List, Mapping, Optional, Tuple, Union

from zk.artifacts import VerifyingKey
from zk.curves import Curve
from zk.errors import DeserializationError

_DEC_RE = re.compile(r"^\s*([0-9]+)\s*$")
_HEX_RE = re.compile(r"^\s*0[xX]([0-9a-fA-F]+)\s*$")


def _to_int(value: Any, where: str) -> int:
    if isinstance(value, bool):
        raise DeserializationError(f"{where}: expected a number, got {value!r}")
    if isinstance(value, int):
        if value < 0:
            raise DeserializationError(f"{where}: negative coordinate")
        return value
    if isinstance(value, str):
        # snarkjs writes decimal strings, leading zeros included
        match = _DEC_RE.match(value)
        if match:
            return int(match.group(1), 10)
        match = _HEX_RE.match(value)
        if match:
            return int(match.group(1), 16)
    raise DeserializationError(f"{where}: expected a number, got {value!r}")


def _g1(point: Any, where: str) -> Tuple[int, int]:
    if not isinstance(point, list) or len(point) not in (2, 3):
        raise DeserializationError(f"{where}: G1 point must be [x, y] or [x, y, 1]")
    if len(point) == 3 and _to_int(point[2], where) != 1:
        raise DeserializationError(f"{where}: G1 point is not affine-normalized")
    return _to_int(point[0], where), _to_int(point[1], where)


def _g2(point: Any, where: str) -> Tuple[int, int, int, int]:
    if not isinstance(point, list) or len(point) not in (2, 3):
        raise DeserializationError(
            f"{where}: G2 point must be [[x0, x1], [y0, y1]] (+ optional [1, 0])")
    for coord in point:
        if not isinstance(coord, list) or len(coord) != 2:
            raise DeserializationError(f"{where}: G2 coordinates must be pairs")
    if len(point) == 3 and (_to_int(point[2][0], where), _to_int(point[2][1], where)) != (1, 0):
        raise DeserializationError(f"{where}: G2 point is not affine-normalized")
    (x0, x1), (y0, y1) = point[0], point[1]
    return (_to_int(x0, where), _to_int(x1, where),
            _to_int(y0, where), _to_int(y1, where))


def parse_snarkjs_vkey(source: Union[bytes, str, Mapping[str, Any]],
                       expected_curve: Optional[Curve] = Curve.BN254) -> VerifyingKey:
    """Parse a snarkjs Groth16 verifying key into a VerifyingKey"""
    if isinstance(source, Mapping):
        obj = dict(source)
    else:
        try:
            text = source.decode("utf-8") if isinstance(source, bytes) else source
            obj = json.loads(text)
        except ValueError as e:
            raise DeserializationError(f"ballot proof vkey is not valid JSON: {e}") from e

    if not isinstance(obj, dict):
        raise DeserializationError("ballot proof vkey must be a JSON object")

    protocol = str(obj.get("protocol", "")).lower()
    if protocol != "groth16":
        raise DeserializationError(
            f"unsupported proof protocol {protocol or '<missing>'!r}, expected groth16")

    try:
        curve = Curve.parse(str(obj.get("curve", "bn128")))
    except ValueError as e:
        raise DeserializationError(str(e)) from e
    if expected_curve is not None and curve != expected_curve:
        raise DeserializationError(
            f"ballot proof vkey is over {curve.value}, expected {expected_curve.value}")
    if curve.params.g2_degree != 2:
        raise DeserializationError(f"snarkjs keys over {curve.value} are not supported")

    missing = [k for k in ("vk_alpha_1", "vk_beta_2", "vk_gamma_2", "vk_delta_2", "IC") if k not in obj]
    if missing:
        raise DeserializationError(f"ballot proof vkey is missing {', '.join(missing)}")

    ic: List[Tuple[int, int]] = []
    if not isinstance(obj["IC"], list) or not obj["IC"]:
        raise DeserializationError("IC must be a non-empty list")
    for i, point in enumerate(obj["IC"]):
        ic.append(_g1(point, f"IC[{i}]"))

    n_public = obj.get("nPublic")
    if n_public is not None and _to_int(n_public, "nPublic") + 1 != len(ic):
        raise DeserializationError(
            f"nPublic={n_public} does not match {len(ic)} IC points")

    return VerifyingKey(
        curve=curve,
        alpha_g1=_g1(obj["vk_alpha_1"], "vk_alpha_1"),
        beta_g2=_g2(obj["vk_beta_2"], "vk_beta_2"),
        gamma_g2=_g2(obj["vk_gamma_2"], "vk_gamma_2"),
        delta_g2=_g2(obj["vk_delta_2"], "vk_delta_2"),
        k=tuple(ic),
    )
