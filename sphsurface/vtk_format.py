"""Reading and writing legacy VTK files with particles and triangle meshes."""

from __future__ import annotations

import os
import re
import struct
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from .obj_format import MeshAttribute, MeshWithData, TriMesh3d

Vector3 = tuple[float, float, float]

UNSTRUCTURED_GRID = "UNSTRUCTURED_GRID"
POLYDATA = "POLYDATA"
_VTK_VERTEX = 1

_DTYPES = {
    "unsigned_char": "B",
    "char": "b",
    "unsigned_short": "H",
    "short": "h",
    "unsigned_int": "I",
    "int": "i",
    "unsigned_long": "Q",
    "long": "q",
    "vtktypeint64": "q",
    "vtktypeuint64": "Q",
    "vtkidtype": "i",
    "float": "f",
    "double": "d",
}
_FLOAT_TYPES = ("float", "double")
_VERSION = re.compile(r"#\s*vtk\s+DataFile\s+Version\s+(\d+)\.(\d+)", re.IGNORECASE)


class VtkError(ValueError):
    """Raised when VTK data cannot be read, written or interpreted."""


@dataclass
class _DataArray:
    name: str
    num_comp: int
    dtype: str
    values: list


def _dtype(name: str) -> str:
    key = name.lower()
    if key not in _DTYPES:
        raise VtkError(f"unsupported VTK data type '{name}'")
    return key


def _particles_from_coords(coords: Sequence[float]) -> list[Vector3]:
    if len(coords) % 3 != 0:
        raise VtkError("Particle point buffer length is not divisible by 3")
    return [
        (float(x), float(y), float(z))
        for x, y, z in zip(coords[0::3], coords[1::3], coords[2::3])
    ]


@dataclass
class VtkDataPiece:
    """A single data set piece: points, cells and point attributes."""

    kind: str
    points: list[float] = field(default_factory=list)
    points_dtype: str = "double"
    num_cells: int = 0
    cell_verts: list[int] = field(default_factory=list)
    cell_types: list[int] = field(default_factory=list)
    point_data: list[_DataArray] = field(default_factory=list)

    @classmethod
    def from_particles(cls, particles: Iterable[Sequence[float]]) -> VtkDataPiece:
        """Build an unstructured grid with one vertex cell per particle."""
        points = [float(c) for p in particles for c in (p[0], p[1], p[2])]
        n = len(points) // 3
        verts = [v for i in range(n) for v in (1, i)]
        return cls(UNSTRUCTURED_GRID, points, "double", n, verts, [_VTK_VERTEX] * n)

    def point_attribute_names(self) -> list[str]:
        """Names of all point attributes of this piece."""
        return [a.name for a in self.point_data]

    def load_as_particles(self) -> list[Vector3]:
        """Interpret the points of this piece as particle positions."""
        if self.points_dtype not in _FLOAT_TYPES:
            raise VtkError("Point coordinate buffer does not contain f32 or f64 values")
        return _particles_from_coords(self.points)

    def load_as_surface_mesh(self) -> MeshWithData:
        """Interpret this piece as a triangle surface mesh."""
        if self.kind != UNSTRUCTURED_GRID:
            raise VtkError("Unsupported piece type for loading surface mesh")
        vertices = self.load_as_particles()
        verts = self.cell_verts
        if len(verts) % 4 != 0:
            raise VtkError(
                "Length of cell vertex array is invalid. Expected 4 values per cell "
                "(3 for each triangle vertex index + 1 for vertex count). "
                f"There are {len(verts)} values for {self.num_cells} cells."
            )
        triangles = []
        for cell_idx, start in enumerate(range(0, len(verts), 4)):
            count, a, b, c = verts[start : start + 4]
            if count != 3:
                raise VtkError(
                    "Expected only triangle cells. Invalid number of vertex indices "
                    f"({count}) of cell {cell_idx}"
                )
            triangles.append((int(a), int(b), int(c)))
        return MeshWithData(TriMesh3d(vertices, triangles))

    def load_point_attributes(self, names: Iterable[str]) -> list[MeshAttribute]:
        """Load the named point attributes; raises if one does not exist."""
        result = []
        for name in names:
            array = next((a for a in self.point_data if a.name == name), None)
            if array is None:
                raise VtkError(f"Attribute {name} not found in VTK file")
            try:
                data = _convert_array(array)
            except VtkError as exc:
                raise VtkError(f'Attribute "{name}": {exc}') from exc
            result.append(MeshAttribute(name, data))
        return result


def _convert_array(array: _DataArray) -> list:
    if array.num_comp == 1:
        if array.dtype not in ("unsigned_int", "float", "double"):
            raise VtkError("Unsupported IOBuffer scalar data type")
        return [float(v) for v in array.values]
    if array.num_comp == 3:
        if array.dtype not in _FLOAT_TYPES:
            raise VtkError("Unsupported IOBuffer vector data type")
        return _particles_from_coords(array.values)
    raise VtkError(f"Unsupported number of components ({array.num_comp}) in VTK IO buffer")


class _Cursor:
    def __init__(self, data: bytes, binary: bool = False) -> None:
        self.data = data
        self.pos = 0
        self.binary = binary

    def raw_line(self) -> str | None:
        if self.pos >= len(self.data):
            return None
        end = self.data.find(b"\n", self.pos)
        if end < 0:
            end = len(self.data)
        line = self.data[self.pos : end].decode("latin-1").strip()
        self.pos = end + 1
        return line

    def line(self) -> str | None:
        while True:
            line = self.raw_line()
            if line is None or line:
                return line

    def peek_keyword(self) -> str | None:
        saved = self.pos
        line = self.line()
        self.pos = saved
        return line.split()[0].upper() if line else None

    def values(self, count: int, dtype: str) -> list:
        code = _DTYPES[dtype]
        if self.binary:
            st = struct.Struct(f">{count}{code}")
            if self.pos + st.size > len(self.data):
                raise VtkError("unexpected end of binary VTK data")
            values = st.unpack_from(self.data, self.pos)
            self.pos += st.size
            return list(values)
        tokens: list[str] = []
        while len(tokens) < count:
            line = self.line()
            if line is None:
                raise VtkError("unexpected end of ASCII VTK data")
            tokens.extend(line.split())
        if len(tokens) != count:
            raise VtkError("ASCII VTK data does not end at a line boundary")
        convert = float if code in "fd" else int
        try:
            return [convert(t) for t in tokens]
        except ValueError as exc:
            raise VtkError(f"invalid {dtype} value in VTK data") from exc


def _parts(line: str, minimum: int) -> list[str]:
    words = line.split()
    if len(words) < minimum:
        raise VtkError(f"malformed VTK line: {line}")
    return words


def _int(word: str) -> int:
    try:
        return int(word)
    except ValueError:
        raise VtkError(f"expected an integer, found '{word}'") from None


def _read_cells(cur: _Cursor, words: list[str], version: tuple[int, int]) -> tuple[int, list[int]]:
    n, size = _int(words[1]), _int(words[2])
    if version[0] < 5 or cur.peek_keyword() != "OFFSETS":
        return n, cur.values(size, "int")
    offsets = cur.values(n, _dtype(_parts(cur.line(), 2)[1]))
    line = cur.line() or ""
    if not line.upper().startswith("CONNECTIVITY"):
        raise VtkError("expected CONNECTIVITY after OFFSETS")
    connectivity = cur.values(size, _dtype(_parts(line, 2)[1]))
    verts: list[int] = []
    for start, end in zip(offsets, offsets[1:]):
        verts.append(end - start)
        verts.extend(connectivity[start:end])
    return max(n - 1, 0), verts


def _parse(data: bytes) -> tuple[str, VtkDataPiece]:
    cur = _Cursor(data)
    match = _VERSION.match(cur.raw_line() or "")
    if match is None:
        raise VtkError("missing VTK file version header")
    version = (int(match.group(1)), int(match.group(2)))
    title = cur.raw_line()
    encoding = (cur.line() or "").upper()
    if encoding not in ("ASCII", "BINARY"):
        raise VtkError(f"unknown VTK file encoding '{encoding}'")
    cur.binary = encoding == "BINARY"
    dataset = _parts(cur.line() or "", 2)
    if dataset[0].upper() != "DATASET":
        raise VtkError("missing DATASET line")
    kind = dataset[1].upper()
    if kind not in (UNSTRUCTURED_GRID, POLYDATA):
        raise VtkError("VTK file does not contain supported data set pieces")

    piece = VtkDataPiece(kind)
    target: str | None = None
    count = 0

    def store(name: str, num_comp: int, dtype: str, values: list) -> None:
        if target == "POINT":
            piece.point_data.append(_DataArray(name, num_comp, dtype, values))

    while (line := cur.line()) is not None:
        words = line.split()
        key = words[0].upper()
        if key == "POINTS":
            words = _parts(line, 3)
            piece.points_dtype = _dtype(words[2])
            piece.points = cur.values(3 * _int(words[1]), piece.points_dtype)
        elif key == "CELLS":
            piece.num_cells, piece.cell_verts = _read_cells(cur, _parts(line, 3), version)
        elif key in ("VERTICES", "LINES", "POLYGONS", "TRIANGLE_STRIPS"):
            _read_cells(cur, _parts(line, 3), version)
        elif key == "CELL_TYPES":
            piece.cell_types = cur.values(_int(_parts(line, 2)[1]), "int")
        elif key in ("POINT_DATA", "CELL_DATA"):
            target, count = key.split("_")[0], _int(_parts(line, 2)[1])
        elif key == "SCALARS":
            words = _parts(line, 3)
            num_comp = _int(words[3]) if len(words) > 3 else 1
            if cur.peek_keyword() == "LOOKUP_TABLE":
                cur.line()
            dtype = _dtype(words[2])
            store(words[1], num_comp, dtype, cur.values(count * num_comp, dtype))
        elif key in ("VECTORS", "NORMALS"):
            words = _parts(line, 3)
            dtype = _dtype(words[2])
            store(words[1], 3, dtype, cur.values(count * 3, dtype))
        elif key == "TENSORS":
            words = _parts(line, 3)
            dtype = _dtype(words[2])
            store(words[1], 9, dtype, cur.values(count * 9, dtype))
        elif key == "TEXTURE_COORDINATES":
            words = _parts(line, 4)
            dim, dtype = _int(words[2]), _dtype(words[3])
            store(words[1], dim, dtype, cur.values(count * dim, dtype))
        elif key == "COLOR_SCALARS":
            words = _parts(line, 3)
            n = _int(words[2])
            dtype = "unsigned_char" if cur.binary else "float"
            store(words[1], n, dtype, cur.values(count * n, dtype))
        elif key == "LOOKUP_TABLE":
            words = _parts(line, 3)
            cur.values(4 * _int(words[2]), "unsigned_char" if cur.binary else "float")
        elif key == "FIELD":
            for _ in range(_int(_parts(line, 3)[2])):
                arr = _parts(cur.line() or "", 4)
                num_comp, tuples, dtype = _int(arr[1]), _int(arr[2]), _dtype(arr[3])
                store(arr[0], num_comp, dtype, cur.values(num_comp * tuples, dtype))
        elif key == "METADATA":
            while cur.raw_line():
                pass
        else:
            raise VtkError(f"unsupported VTK keyword '{words[0]}'")
    return title or "", piece


@dataclass
class VtkFile:
    """A loaded VTK file with all its data pieces."""

    title: str
    pieces: list[VtkDataPiece]

    @classmethod
    def load_file(cls, file_path: str | os.PathLike[str]) -> VtkFile:
        """Load a VTK file and all its data pieces."""
        try:
            return read_vtk(file_path)
        except VtkError as exc:
            raise VtkError(f'Failed to load VTK file "{file_path}": {exc}') from exc

    def into_pieces(self) -> list[VtkDataPiece]:
        """All pieces that could be loaded from the file."""
        return list(self.pieces)


def read_vtk(filename: str | os.PathLike[str]) -> VtkFile:
    """Read a legacy VTK file (ASCII or big endian binary)."""
    with open(filename, "rb") as handle:
        data = handle.read()
    try:
        title, piece = _parse(data)
    except struct.error as exc:
        raise VtkError(f"malformed VTK data: {exc}") from exc
    return VtkFile(title, [piece])


def _pack(values: Sequence, dtype: str) -> bytes:
    try:
        return struct.pack(f">{len(values)}{_DTYPES[dtype]}", *values) + b"\n"
    except (struct.error, OverflowError, TypeError) as exc:
        raise VtkError(f"values do not fit the VTK data type {dtype}") from exc


def write_vtk(piece: VtkDataPiece, filename: str | os.PathLike[str], title: str) -> None:
    """Write a data piece to a big endian binary legacy VTK file."""
    title = " ".join(title.splitlines())
    out = bytearray(b"# vtk DataFile Version 4.1\n")
    out += title.encode("utf-8") + b"\nBINARY\n"
    out += f"DATASET {piece.kind}\n".encode()
    n_points = len(piece.points) // 3
    out += f"POINTS {n_points} {piece.points_dtype}\n".encode()
    out += _pack(piece.points, piece.points_dtype)
    if piece.kind == UNSTRUCTURED_GRID:
        out += f"CELLS {piece.num_cells} {len(piece.cell_verts)}\n".encode()
        out += _pack(piece.cell_verts, "int")
        out += f"CELL_TYPES {len(piece.cell_types)}\n".encode()
        out += _pack(piece.cell_types, "int")
    if piece.point_data:
        out += f"POINT_DATA {n_points}\nFIELD FieldData {len(piece.point_data)}\n".encode()
        for array in piece.point_data:
            tuples = len(array.values) // array.num_comp
            out += f"{array.name} {array.num_comp} {tuples} {array.dtype}\n".encode()
            out += _pack(array.values, array.dtype)

    path = Path(filename)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(bytes(out))


def particles_from_vtk(file_path: str | os.PathLike[str]) -> list[Vector3]:
    """Read particle positions from the first piece of a VTK file."""
    pieces = VtkFile.load_file(file_path).into_pieces()
    if not pieces:
        raise VtkError(f'No supported pieces in VTK file "{file_path}"')
    return pieces[0].load_as_particles()


def particles_to_vtk(
    particles: Iterable[Sequence[float]], vtk_file: str | os.PathLike[str]
) -> None:
    """Write particle positions to a VTK file as vertex cells."""
    write_vtk(VtkDataPiece.from_particles(particles), vtk_file, "particles")


def surface_mesh_from_vtk(file_path: str | os.PathLike[str]) -> MeshWithData:
    """Read a triangle surface mesh from the first piece of a VTK file."""
    pieces = VtkFile.load_file(file_path).into_pieces()
    if not pieces:
        raise VtkError(f'No supported pieces in VTK file "{file_path}"')
    return pieces[0].load_as_surface_mesh()