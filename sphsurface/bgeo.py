"""In-memory model of the classic binary BGEO point format and its writer."""

from __future__ import annotations

import enum
import gzip
import os
import struct
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import BinaryIO

Vector3 = tuple[float, float, float]

MAGIC_BYTES = b"Bgeo"
VERSION_CHAR = ord("V")
VERSION = 5

_I32_MAX = 2**31 - 1
_U16_MAX = 2**16 - 1
_F32 = struct.Struct(">f")
_I32 = struct.Struct(">i")
_U16 = struct.Struct(">H")
_END_BYTES = b"\x00\xff"


class BgeoAttributeType(enum.Enum):
    """Type of a BGEO attribute, valued by its on-disk type code."""

    FLOAT = 0
    INT = 1
    STRING = 2
    INDEXED_STRING = 4
    VECTOR = 5

    @classmethod
    def from_code(cls, value: int) -> BgeoAttributeType:
        """Return the attribute type for an on-disk type code."""
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"unknown BGEO attribute type code {value}") from None


@dataclass
class AttribDefinition:
    """Definition of a named BGEO point attribute."""

    name: str
    size: int
    attr_type: BgeoAttributeType
    default_values: list[int] = field(default_factory=list)


_STORABLE_TYPES = (
    BgeoAttributeType.INT,
    BgeoAttributeType.FLOAT,
    BgeoAttributeType.VECTOR,
)


@dataclass(eq=True)
class AttributeStorage:
    """Flat storage of attribute values of all points.

    ``size`` is the number of components per point; it is 1 for scalar storages.
    """

    attr_type: BgeoAttributeType
    values: list = field(default_factory=list)
    size: int = 1

    def __post_init__(self) -> None:
        if self.attr_type not in _STORABLE_TYPES:
            raise ValueError(f"unsupported attribute storage type {self.attr_type.name}")
        if self.attr_type is BgeoAttributeType.VECTOR:
            if self.size < 1:
                raise ValueError("vector storage needs at least one component")
        elif self.size != 1:
            raise ValueError("scalar storage must have exactly one component")

    @classmethod
    def ints(cls, values: Iterable[int]) -> AttributeStorage:
        return cls(BgeoAttributeType.INT, [int(v) for v in values])

    @classmethod
    def floats(cls, values: Iterable[float]) -> AttributeStorage:
        return cls(BgeoAttributeType.FLOAT, [float(v) for v in values])

    @classmethod
    def vectors(cls, size: int, values: Iterable[float]) -> AttributeStorage:
        return cls(BgeoAttributeType.VECTOR, [float(v) for v in values], size)

    def num_points(self) -> int:
        """Number of points held by this storage."""
        return len(self.values) // self.size

    def __len__(self) -> int:
        """Number of scalar values held by this storage."""
        return len(self.values)

    def _pack_point(self, index: int) -> bytes:
        start = index * self.size
        chunk = self.values[start : start + self.size]
        if len(chunk) != self.size:
            raise ValueError(
                f"attribute storage holds no complete value for point {index}"
            )
        try:
            if self.attr_type is BgeoAttributeType.INT:
                return b"".join(_I32.pack(v) for v in chunk)
            return b"".join(_F32.pack(v) for v in chunk)
        except (struct.error, OverflowError) as exc:
            raise ValueError(
                f"attribute value of point {index} does not fit the BGEO data type"
            ) from exc


@dataclass
class BgeoHeader:
    """Header data of a BGEO file."""

    magic_bytes: bytes = MAGIC_BYTES
    version_char: int = VERSION_CHAR
    version: int = VERSION
    num_points: int = 0
    num_prims: int = 0
    num_point_groups: int = 0
    num_prim_groups: int = 0
    num_point_attrib: int = 0
    num_vertex_attrib: int = 0
    num_prim_attrib: int = 0
    num_attrib: int = 0

    def _counts(self) -> tuple[int, ...]:
        return (
            self.version,
            self.num_points,
            self.num_prims,
            self.num_point_groups,
            self.num_prim_groups,
            self.num_point_attrib,
            self.num_vertex_attrib,
            self.num_prim_attrib,
            self.num_attrib,
        )


@dataclass
class BgeoFile:
    """A parsed or to-be-written BGEO file."""

    header: BgeoHeader
    positions: AttributeStorage
    weights: AttributeStorage
    attribute_definitions: list[AttribDefinition] = field(default_factory=list)
    attribute_data: list[tuple[str, AttributeStorage]] = field(default_factory=list)


def _to_f32(value: float) -> float:
    try:
        return _F32.unpack(_F32.pack(float(value)))[0]
    except (struct.error, OverflowError, TypeError, ValueError) as exc:
        raise ValueError(
            "Failed to convert coordinate from input float type to f32, value out of range?"
        ) from exc


def bgeo_file_from_particles(particles: Sequence[Sequence[float]]) -> BgeoFile:
    """Build a BGEO file structure holding the given particle positions."""
    coordinates = [_to_f32(c) for p in particles for c in (p[0], p[1], p[2])]
    count = len(particles)
    if count > _I32_MAX:
        raise ValueError(
            f"number of particles ({count}) is too large for bgeo format (max {_I32_MAX})"
        )
    return BgeoFile(
        header=BgeoHeader(num_points=count),
        positions=AttributeStorage.vectors(3, coordinates),
        weights=AttributeStorage.floats([1.0] * count),
    )


def particles_from_bgeo_file(bgeo: BgeoFile) -> list[Vector3]:
    """Extract the particle positions of a BGEO file structure."""
    positions = bgeo.positions
    if positions.attr_type is not BgeoAttributeType.VECTOR or positions.size != 3:
        raise ValueError("Positions are not stored as 3D vectors")
    if len(positions) % 3 != 0:
        raise ValueError("Position storage length is not divisible by 3")
    values = positions.values
    return [
        (float(x), float(y), float(z))
        for x, y, z in zip(values[0::3], values[1::3], values[2::3])
    ]


def _serialize(bgeo: BgeoFile) -> bytes:
    header = bgeo.header
    if len(header.magic_bytes) != 4:
        raise ValueError("BGEO magic bytes must be exactly 4 bytes long")

    out = bytearray(header.magic_bytes)
    out.append(header.version_char)
    out += b"".join(_I32.pack(v) for v in header._counts())

    for attrib in bgeo.attribute_definitions:
        name = attrib.name.encode("utf-8")
        if len(name) > _U16_MAX or attrib.size > _U16_MAX:
            raise ValueError(f"attribute definition '{attrib.name}' is too large")
        out += _U16.pack(len(name))
        out += name
        out += _U16.pack(attrib.size)
        out += _I32.pack(attrib.attr_type.value)
        out += b"".join(_I32.pack(v) for v in attrib.default_values)

    storages = [bgeo.positions, bgeo.weights, *(s for _, s in bgeo.attribute_data)]
    num_points = max(s.num_points() for s in storages)
    for index in range(num_points):
        for storage in storages:
            out += storage._pack_point(index)

    out += _END_BYTES
    return bytes(out)


def write_bgeo_file(bgeo: BgeoFile, stream: BinaryIO, enable_compression: bool) -> None:
    """Write a BGEO file structure to a binary stream, optionally gzip compressed."""
    data = _serialize(bgeo)
    if enable_compression:
        with gzip.GzipFile(fileobj=stream, mode="wb", compresslevel=1) as gz:
            gz.write(data)
    else:
        stream.write(data)


def particles_to_bgeo(
    particles: Sequence[Sequence[float]],
    bgeo_file: str | os.PathLike[str],
    enable_compression: bool,
) -> None:
    """Write particle positions to a BGEO file at the given path."""
    bgeo = bgeo_file_from_particles(particles)
    with open(bgeo_file, "wb") as handle:
        write_bgeo_file(bgeo, handle, enable_compression)