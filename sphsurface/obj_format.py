"""Triangle meshes with attached data and their export to the OBJ format."""

from __future__ import annotations

import math
import os
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from decimal import Decimal

Vector3 = tuple[float, float, float]
Triangle = tuple[int, int, int]


@dataclass
class TriMesh3d:
    """A triangle surface mesh in three dimensions."""

    vertices: list[Vector3] = field(default_factory=list)
    triangles: list[Triangle] = field(default_factory=list)


@dataclass
class MeshAttribute:
    """Named data attached to the points or cells of a mesh.

    ``data`` holds either scalars or 3D vectors, one entry per point or cell.
    """

    name: str
    data: list


@dataclass
class MeshWithData:
    """A mesh together with point and cell attributes."""

    mesh: TriMesh3d
    point_attributes: list[MeshAttribute] = field(default_factory=list)
    cell_attributes: list[MeshAttribute] = field(default_factory=list)

    def with_point_data(self, attribute: MeshAttribute) -> MeshWithData:
        """Return a copy of this mesh with the given point attribute added."""
        return replace(self, point_attributes=[*self.point_attributes, attribute])


def _is_vector3_data(data: Sequence) -> bool:
    return all(
        isinstance(v, Sequence) and not isinstance(v, (str, bytes)) and len(v) == 3
        for v in data
    )


def _format_number(value: float) -> str:
    value = float(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    if value.is_integer():
        if value == 0.0 and math.copysign(1.0, value) < 0:
            return "-0"
        return str(int(value))
    return format(Decimal(repr(value)), "f")


def mesh_to_obj(mesh: MeshWithData, filename: str | os.PathLike[str]) -> None:
    """Write the mesh to an OBJ file, including vertex normals if present."""
    normals = next((a for a in mesh.point_attributes if a.name == "normals"), None)

    lines = [
        "v " + " ".join(_format_number(c) for c in (v[0], v[1], v[2]))
        for v in mesh.mesh.vertices
    ]

    if normals is not None and _is_vector3_data(normals.data):
        lines.extend(
            "vn " + " ".join(_format_number(c) for c in (n[0], n[1], n[2]))
            for n in normals.data
        )

    if normals is not None:
        lines.extend(
            "f" + "".join(f" {i + 1}//{i + 1}" for i in face) for face in mesh.mesh.triangles
        )
    else:
        lines.extend(
            "f" + "".join(f" {i + 1}" for i in face) for face in mesh.mesh.triangles
        )

    with open(filename, "w", encoding="utf-8", newline="") as handle:
        handle.writelines(line + "\n" for line in lines)