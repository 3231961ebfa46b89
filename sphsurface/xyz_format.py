"""Reading particle positions from binary ``.xyz`` files.

The file is a plain sequence of native-endian 32-bit float triplets; an
incomplete trailing triplet is ignored.
"""

from __future__ import annotations

import os
import struct

Vector3 = tuple[float, float, float]

_TRIPLET = struct.Struct("=3f")


def particles_from_xyz(xyz_file: str | os.PathLike[str]) -> list[Vector3]:
    """Load all complete coordinate triplets from a binary XYZ file."""
    with open(xyz_file, "rb") as handle:
        data = handle.read()
    usable = len(data) - len(data) % _TRIPLET.size
    return [
        (float(x), float(y), float(z))
        for x, y, z in _TRIPLET.iter_unpack(data[:usable])
    ]