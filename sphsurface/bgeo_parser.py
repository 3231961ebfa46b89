"""Parser for the classic binary BGEO point format."""

from __future__ import annotations

import enum
import gzip
import os
import struct
from collections.abc import Iterable
from dataclasses import dataclass

from .bgeo import (
    MAGIC_BYTES,
    VERSION,
    AttribDefinition,
    AttributeStorage,
    BgeoAttributeType,
    BgeoFile,
    BgeoHeader,
    Vector3,
    particles_from_bgeo_file,
)

NEW_MAGIC_BYTES = bytes([0x7F, 0x4E, 0x53, 0x4A])
_GZIP_MAGIC = b"\x1f\x8b"

_U8 = struct.Struct(">B")
_U16 = struct.Struct(">H")
_I32 = struct.Struct(">i")
_COUNTS = struct.Struct(">8i")

_STORABLE_TYPES = (
    BgeoAttributeType.FLOAT,
    BgeoAttributeType.INT,
    BgeoAttributeType.VECTOR,
)


class BgeoErrorKind(enum.Enum):
    """Kinds of errors reported while parsing BGEO data."""

    MAGIC_BYTES_NOT_FOUND = "magic bytes not found"
    UNSUPPORTED_FORMAT_VERSION = "unsupported format version"
    INVALID_ATTRIBUTE_NAME = "invalid attribute name"
    UNSUPPORTED_ATTRIBUTE_TYPE = "unsupported attribute type"
    UNKNOWN_ATTRIBUTE_TYPE = "unknown attribute type"
    CONTEXT = "context"
    TAG_MISMATCH = "tag mismatch"
    UNEXPECTED_END = "unexpected end of input"

    @property
    def is_internal(self) -> bool:
        """Whether this is a low-level parser error rather than a format error."""
        return self in _INTERNAL_KINDS


_INTERNAL_KINDS = frozenset({BgeoErrorKind.TAG_MISMATCH, BgeoErrorKind.UNEXPECTED_END})


@dataclass(frozen=True)
class BgeoErrorEntry:
    """One step of a parser error backtrace."""

    offset: int
    kind: BgeoErrorKind
    detail: str = ""

    def __str__(self) -> str:
        detail = f" ({self.detail})" if self.detail else ""
        return f"{self.kind.value}{detail} at byte {self.offset}"


class BgeoParseError(ValueError):
    """Raised when BGEO data cannot be parsed; carries a backtrace of error entries."""

    def __init__(self, backtrace: Iterable[BgeoErrorEntry]) -> None:
        self.backtrace = list(backtrace)
        message = "; ".join(str(e) for e in self.backtrace) or "unknown BGEO parser error"
        super().__init__(message)

    @classmethod
    def single(cls, offset: int, kind: BgeoErrorKind, detail: str = "") -> BgeoParseError:
        return cls([BgeoErrorEntry(offset, kind, detail)])

    def with_append(self, offset: int, kind: BgeoErrorKind, detail: str = "") -> BgeoParseError:
        """Return a new error with an entry appended to the backtrace."""
        return BgeoParseError([*self.backtrace, BgeoErrorEntry(offset, kind, detail)])

    def first_bgeo_error(self) -> BgeoErrorKind | None:
        """Kind of the first entry that is an actual format error, skipping internal ones."""
        return next((e.kind for e in self.backtrace if not e.kind.is_internal), None)

    def error_kinds(self) -> list[BgeoErrorKind]:
        """All error kinds of the backtrace, in order."""
        return [e.kind for e in self.backtrace]


class _Reader:
    def __init__(self, data: bytes, offset: int = 0) -> None:
        self.data = data
        self.offset = offset

    def take(self, n: int) -> bytes:
        end = self.offset + n
        if end > len(self.data):
            raise BgeoParseError.single(
                self.offset,
                BgeoErrorKind.UNEXPECTED_END,
                f"needed {end - len(self.data)} more bytes",
            )
        chunk = self.data[self.offset : end]
        self.offset = end
        return chunk

    def unpack(self, st: struct.Struct) -> tuple:
        return st.unpack(self.take(st.size))


def parse_header_magic(data: bytes) -> tuple[bytes, bytes]:
    """Validate the magic bytes; return the remaining input and the magic bytes."""
    data = bytes(data)
    head = data[:4]
    if head == MAGIC_BYTES:
        return data[4:], head
    if len(data) < 4 and MAGIC_BYTES.startswith(data):
        raise BgeoParseError.single(
            len(data), BgeoErrorKind.UNEXPECTED_END, "incomplete magic bytes"
        )
    if head == NEW_MAGIC_BYTES:
        raise BgeoParseError(
            [
                BgeoErrorEntry(0, BgeoErrorKind.TAG_MISMATCH),
                BgeoErrorEntry(
                    0, BgeoErrorKind.UNSUPPORTED_FORMAT_VERSION, "new BGEO format"
                ),
            ]
        )
    if len(data) < 4 and NEW_MAGIC_BYTES.startswith(data):
        raise BgeoParseError.single(
            len(data), BgeoErrorKind.UNEXPECTED_END, "incomplete magic bytes"
        )
    raise BgeoParseError(
        [
            BgeoErrorEntry(0, BgeoErrorKind.TAG_MISMATCH),
            BgeoErrorEntry(0, BgeoErrorKind.MAGIC_BYTES_NOT_FOUND),
        ]
    )


def _parse_header(data: bytes) -> tuple[BgeoHeader, _Reader]:
    _, magic = parse_header_magic(data)
    reader = _Reader(data, len(magic))
    (version_char,) = reader.unpack(_U8)
    version_offset = reader.offset
    (version,) = reader.unpack(_I32)
    if version != VERSION:
        raise BgeoParseError.single(
            version_offset, BgeoErrorKind.UNSUPPORTED_FORMAT_VERSION, f"version {version}"
        )
    counts = reader.unpack(_COUNTS)
    header = BgeoHeader(magic, version_char, version, *counts)
    return header, reader


def _parse_attr_def(reader: _Reader) -> AttribDefinition:
    (name_length,) = reader.unpack(_U16)
    name_offset = reader.offset
    raw_name = reader.take(name_length)
    try:
        name = raw_name.decode("utf-8")
    except UnicodeDecodeError:
        raise BgeoParseError.single(
            name_offset, BgeoErrorKind.INVALID_ATTRIBUTE_NAME
        ) from None

    (size,) = reader.unpack(_U16)
    type_offset = reader.offset
    (code,) = reader.unpack(_I32)
    try:
        attr_type = BgeoAttributeType.from_code(code)
    except ValueError:
        raise BgeoParseError.single(
            type_offset, BgeoErrorKind.UNKNOWN_ATTRIBUTE_TYPE, f"type code {code}"
        ) from None

    if attr_type not in _STORABLE_TYPES:
        raise BgeoParseError.single(
            reader.offset, BgeoErrorKind.UNSUPPORTED_ATTRIBUTE_TYPE, attr_type.name
        )

    defaults = [reader.unpack(_I32)[0] for _ in range(size)]
    return AttribDefinition(name, size, attr_type, defaults)


def _point_format(attrib: AttribDefinition, offset: int) -> tuple[AttributeStorage, struct.Struct]:
    if attrib.attr_type is BgeoAttributeType.VECTOR:
        if attrib.size < 1:
            raise BgeoParseError.single(
                offset, BgeoErrorKind.CONTEXT, f"vector attribute '{attrib.name}' has no components"
            )
        return (
            AttributeStorage(attrib.attr_type, [], attrib.size),
            struct.Struct(f">{attrib.size}f"),
        )
    if attrib.size != 1:
        raise BgeoParseError.single(
            offset,
            BgeoErrorKind.CONTEXT,
            f"scalar attribute '{attrib.name}' with size {attrib.size} is not supported",
        )
    fmt = _I32 if attrib.attr_type is BgeoAttributeType.INT else struct.Struct(">f")
    return AttributeStorage(attrib.attr_type, []), fmt


_SPECIAL_ATTRIBUTES = (
    AttribDefinition("position", 3, BgeoAttributeType.VECTOR, [0, 0, 0]),
    # Additional float between positions and named attributes of unknown meaning
    AttribDefinition("unknown", 1, BgeoAttributeType.FLOAT, [0]),
)


def parse_bgeo(data: bytes) -> BgeoFile:
    """Parse the full contents of an uncompressed BGEO file."""
    data = bytes(data)
    header, reader = _parse_header(data)

    if header.num_point_attrib < 0:
        raise BgeoParseError.single(
            reader.offset, BgeoErrorKind.CONTEXT, "negative point attribute count"
        )
    if header.num_points < 0:
        raise BgeoParseError.single(reader.offset, BgeoErrorKind.CONTEXT, "negative point count")

    named = [_parse_attr_def(reader) for _ in range(header.num_point_attrib)]

    parsers = [_point_format(a, reader.offset) for a in (*_SPECIAL_ATTRIBUTES, *named)]
    for _ in range(header.num_points):
        for storage, fmt in parsers:
            storage.values.extend(reader.unpack(fmt))

    storages = [storage for storage, _ in parsers]
    positions, weights, *named_storages = storages
    return BgeoFile(
        header=header,
        positions=positions,
        weights=weights,
        attribute_definitions=named,
        attribute_data=[(a.name, s) for a, s in zip(named, named_storages)],
    )


def load_bgeo_file(bgeo_file: str | os.PathLike[str]) -> BgeoFile:
    """Load and parse a BGEO file, transparently handling gzip compression."""
    with open(bgeo_file, "rb") as handle:
        data = handle.read()
    if data.startswith(_GZIP_MAGIC):
        data = gzip.decompress(data)
    return parse_bgeo(data)


def particles_from_bgeo(bgeo_file: str | os.PathLike[str]) -> list[Vector3]:
    """Load particle positions from a BGEO file."""
    return particles_from_bgeo_file(load_bgeo_file(bgeo_file))