"""Reading and writing particle positions as JSON arrays of coordinate triplets.

The expected layout is an array of arrays, e.g. ``[[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]]``.
"""

from __future__ import annotations

import json
import math
import os
from collections.abc import Iterable, Sequence

Vector3 = tuple[float, float, float]

_STRUCTURE_HINT = (
    "Parsing of JSON structure as particle positions failed. Expected JSON file "
    "containing particle positions like e.g. '[[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]]'."
)


def _reject_constant(name: str) -> float:
    raise ValueError(f"invalid JSON number: {name}")


def _to_coordinate(value: object) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(_STRUCTURE_HINT)
    try:
        return float(value)
    except OverflowError as exc:
        raise ValueError(
            "Failed to convert coordinate to float, value out of range?"
        ) from exc


def particles_from_json(json_file: str | os.PathLike[str]) -> list[Vector3]:
    """Load particle positions from a JSON file."""
    with open(json_file, encoding="utf-8") as handle:
        try:
            data = json.load(handle, parse_constant=_reject_constant)
        except ValueError as exc:
            raise ValueError(
                "Reading of file to JSON structure failed. Not a valid JSON file."
            ) from exc

    if not isinstance(data, list):
        raise ValueError(_STRUCTURE_HINT)

    particles = []
    for raw in data:
        if not isinstance(raw, list) or len(raw) != 3:
            raise ValueError(_STRUCTURE_HINT)
        x, y, z = (_to_coordinate(c) for c in raw)
        particles.append((x, y, z))
    return particles


def _json_number(value: float) -> float | None:
    # Non-finite numbers have no JSON representation and are written as null.
    return value if math.isfinite(value) else None


def particles_to_json(
    particles: Iterable[Sequence[float]], json_file: str | os.PathLike[str]
) -> None:
    """Write particle positions to a JSON file as an array of coordinate triplets."""
    rows = []
    for particle in particles:
        try:
            coords = [float(particle[0]), float(particle[1]), float(particle[2])]
        except (TypeError, ValueError, OverflowError, IndexError) as exc:
            raise ValueError(
                "Failed to convert coordinate from input type to float, value out of range?"
            ) from exc
        rows.append([_json_number(c) for c in coords])

    with open(json_file, "w", encoding="utf-8") as handle:
        json.dump(rows, handle, separators=(",", ":"), allow_nan=False)