"""Reading particle positions and surface meshes from PLY files."""

from __future__ import annotations

import os
import struct
from dataclasses import dataclass

from .obj_format import MeshAttribute, MeshWithData, TriMesh3d

Vector3 = tuple[float, float, float]

# Canonical scalar type name and struct code for every PLY type spelling
_TYPES = {
    "char": ("char", "b"),
    "int8": ("char", "b"),
    "uchar": ("uchar", "B"),
    "uint8": ("uchar", "B"),
    "short": ("short", "h"),
    "int16": ("short", "h"),
    "ushort": ("ushort", "H"),
    "uint16": ("ushort", "H"),
    "int": ("int", "i"),
    "int32": ("int", "i"),
    "uint": ("uint", "I"),
    "uint32": ("uint", "I"),
    "float": ("float", "f"),
    "float32": ("float", "f"),
    "double": ("double", "d"),
    "float64": ("double", "d"),
}
_FORMATS = {"ascii": None, "binary_little_endian": "<", "binary_big_endian": ">"}
_F32 = struct.Struct("<f")


class PlyError(ValueError):
    """Raised when a PLY file cannot be parsed or does not hold the expected data."""


@dataclass
class _PropertyDef:
    name: str
    type_name: str
    count_type: str | None = None


@dataclass
class _ElementDef:
    name: str
    count: int
    properties: list[_PropertyDef]


def _resolve_type(name: str) -> str:
    try:
        return _TYPES[name][0]
    except KeyError:
        raise PlyError(f"unknown PLY property type '{name}'") from None


def _parse_header(data: bytes) -> tuple[str, list[_ElementDef], int]:
    if not data.startswith(b"ply"):
        raise PlyError("missing 'ply' magic number")
    pos = 0
    fmt = None
    elements: list[_ElementDef] = []
    while True:
        end = data.find(b"\n", pos)
        if end < 0:
            raise PlyError("PLY header is not terminated by 'end_header'")
        words = data[pos:end].decode("latin-1").split()
        pos = end + 1
        if not words or words[0] in ("ply", "comment", "obj_info"):
            continue
        keyword = words[0]
        if keyword == "end_header":
            break
        if keyword == "format":
            if len(words) < 2 or words[1] not in _FORMATS:
                raise PlyError(f"unsupported PLY format line: {' '.join(words)}")
            fmt = words[1]
        elif keyword == "element":
            if len(words) != 3 or not words[2].isdigit():
                raise PlyError(f"invalid element line: {' '.join(words)}")
            elements.append(_ElementDef(words[1], int(words[2]), []))
        elif keyword == "property":
            if not elements:
                raise PlyError("property declared before any element")
            if len(words) == 5 and words[1] == "list":
                prop = _PropertyDef(words[4], _resolve_type(words[3]), _resolve_type(words[2]))
            elif len(words) == 3:
                prop = _PropertyDef(words[2], _resolve_type(words[1]))
            else:
                raise PlyError(f"invalid property line: {' '.join(words)}")
            elements[-1].properties.append(prop)
        else:
            raise PlyError(f"unknown PLY header keyword '{keyword}'")
    if fmt is None:
        raise PlyError("PLY header has no format line")
    return fmt, elements, pos


def _code(type_name: str) -> str:
    return _TYPES[type_name][1]


def _convert_text(token: str, type_name: str) -> float | int:
    try:
        if type_name == "float":
            return _F32.unpack(_F32.pack(float(token)))[0]
        if type_name == "double":
            return float(token)
        return int(token)
    except (ValueError, OverflowError, struct.error) as exc:
        raise PlyError(f"invalid {type_name} value '{token}'") from exc


def _kind(prop: _PropertyDef) -> str:
    return f"list {prop.type_name}" if prop.count_type else prop.type_name


def _parse_ascii(body: bytes, elements: list[_ElementDef]) -> dict:
    tokens = iter(body.decode("latin-1").split())

    def take(type_name: str) -> float | int:
        try:
            return _convert_text(next(tokens), type_name)
        except StopIteration:
            raise PlyError("unexpected end of PLY data") from None

    payload = {}
    for element in elements:
        records = []
        for _ in range(element.count):
            record = {}
            for prop in element.properties:
                if prop.count_type:
                    n = int(take(prop.count_type))
                    record[prop.name] = (_kind(prop), [take(prop.type_name) for _ in range(n)])
                else:
                    record[prop.name] = (_kind(prop), take(prop.type_name))
            records.append(record)
        payload[element.name] = records
    return payload


def _parse_binary(body: bytes, elements: list[_ElementDef], order: str) -> dict:
    offset = 0

    def take(type_name: str, n: int = 1) -> tuple:
        nonlocal offset
        st = struct.Struct(f"{order}{n}{_code(type_name)}")
        if offset + st.size > len(body):
            raise PlyError("unexpected end of PLY data")
        values = st.unpack_from(body, offset)
        offset += st.size
        return values

    payload = {}
    for element in elements:
        records = []
        for _ in range(element.count):
            record = {}
            for prop in element.properties:
                if prop.count_type:
                    (n,) = take(prop.count_type)
                    if n < 0:
                        raise PlyError(f"negative list length for property '{prop.name}'")
                    record[prop.name] = (_kind(prop), list(take(prop.type_name, n)))
                else:
                    record[prop.name] = (_kind(prop), take(prop.type_name)[0])
            records.append(record)
        payload[element.name] = records
    return payload


def parse_ply(data: bytes) -> dict[str, list[dict[str, tuple[str, object]]]]:
    """Parse PLY data into a mapping of element name to its records.

    Every record maps a property name to a pair ``(kind, value)``, where ``kind``
    is the canonical type name (e.g. ``"float"``) or ``"list <type>"`` for lists.
    """
    data = bytes(data)
    fmt, elements, body_start = _parse_header(data)
    body = data[body_start:]
    order = _FORMATS[fmt]
    if order is None:
        return _parse_ascii(body, elements)
    return _parse_binary(body, elements, order)


def _read(ply_path: str | os.PathLike[str]) -> dict:
    with open(ply_path, "rb") as handle:
        return parse_ply(handle.read())


def _element(payload: dict, name: str) -> list:
    try:
        return payload[name]
    except KeyError:
        raise PlyError(f"PLY file is missing a '{name}' element") from None


def _floats(record: dict, names: tuple[str, ...]) -> Vector3:
    values = []
    for name in names:
        if name not in record:
            raise PlyError(f"vertex is missing the '{name}' property")
        kind, value = record[name]
        if kind != "float":
            raise PlyError("Vertex properties have wrong PLY data type (expected float)")
        values.append(float(value))
    return (values[0], values[1], values[2])


def particles_from_ply(ply_path: str | os.PathLike[str]) -> list[Vector3]:
    """Load particle positions from the 'vertex' element of a PLY file."""
    vertices = _element(_read(ply_path), "vertex")
    return [_floats(e, ("x", "y", "z")) for e in vertices]


def surface_mesh_from_ply(ply_path: str | os.PathLike[str]) -> MeshWithData:
    """Load a triangle mesh with vertex normals from a PLY file."""
    payload = _read(ply_path)
    vertex_records = _element(payload, "vertex")
    vertices = [_floats(e, ("x", "y", "z")) for e in vertex_records]
    normals = [_floats(e, ("nx", "ny", "nz")) for e in vertex_records]

    triangles = []
    for face in _element(payload, "face"):
        if "vertex_indices" not in face:
            raise PlyError("A face is missing a 'vertex_indices' element")
        kind, indices = face["vertex_indices"]
        if kind != "list uint":
            raise PlyError("Index properties have wrong PLY data type (expected uint)")
        if len(indices) != 3:
            raise PlyError(
                f"Invalid number of vertex indices per face: {len(indices)} (expected 3)"
            )
        triangles.append((int(indices[0]), int(indices[1]), int(indices[2])))

    mesh = MeshWithData(TriMesh3d(vertices, triangles))
    return mesh.with_point_data(MeshAttribute("normals", normals))