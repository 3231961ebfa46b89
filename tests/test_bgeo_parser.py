import gzip
import io
import struct

import pytest

from sphsurface.bgeo import (
    AttribDefinition,
    AttributeStorage,
    BgeoAttributeType,
    BgeoHeader,
    BgeoFile,
    bgeo_file_from_particles,
    particles_to_bgeo,
    write_bgeo_file,
)
from sphsurface.bgeo_parser import (
    BgeoErrorKind,
    BgeoParseError,
    load_bgeo_file,
    parse_bgeo,
    parse_header_magic,
    particles_from_bgeo,
)

PARTICLES = [(0.5, 1.25, -2.0), (3.0, -0.75, 0.0), (10.5, 0.125, 7.0)]


def _header(num_points=0, num_point_attrib=0, version=5):
    return b"Bgeo" + b"V" + struct.pack(
        ">9i", version, num_points, 0, 0, 0, num_point_attrib, 0, 0, 0
    )


def _attr(name, size, code, defaults=()):
    return (
        struct.pack(">H", len(name))
        + name
        + struct.pack(">H", size)
        + struct.pack(">i", code)
        + b"".join(struct.pack(">i", d) for d in defaults)
    )


def _serialize(bgeo):
    buffer = io.BytesIO()
    write_bgeo_file(bgeo, buffer, False)
    return buffer.getvalue()


def test_header_magic_parser_accepts_bgeo():
    assert parse_header_magic(b"Bgeooo") == (b"oo", b"Bgeo")


def test_header_magic_parser_rejects_new_format():
    with pytest.raises(BgeoParseError) as info:
        parse_header_magic(bytes([0x7F, 0x4E, 0x53, 0x4A]))
    assert info.value.first_bgeo_error() == BgeoErrorKind.UNSUPPORTED_FORMAT_VERSION


def test_header_magic_parser_rejects_unknown_magic():
    with pytest.raises(BgeoParseError) as info:
        parse_header_magic(b"Hgeo")
    assert info.value.first_bgeo_error() == BgeoErrorKind.MAGIC_BYTES_NOT_FOUND
    assert info.value.error_kinds()[0] == BgeoErrorKind.TAG_MISMATCH


def test_header_magic_parser_incomplete():
    with pytest.raises(BgeoParseError) as info:
        parse_header_magic(b"Bge")
    assert info.value.first_bgeo_error() is None
    assert info.value.error_kinds() == [BgeoErrorKind.UNEXPECTED_END]


def test_unsupported_version():
    with pytest.raises(BgeoParseError) as info:
        parse_bgeo(_header(version=4) + b"\x00\xff")
    assert info.value.first_bgeo_error() == BgeoErrorKind.UNSUPPORTED_FORMAT_VERSION


def test_empty_file():
    bgeo = parse_bgeo(_header() + b"\x00\xff")
    assert bgeo.header.num_points == 0
    assert bgeo.header.magic_bytes == b"Bgeo"
    assert bgeo.positions.values == []
    assert bgeo.weights.values == []


def test_particles_write_read_roundtrip():
    bgeo = bgeo_file_from_particles(PARTICLES)
    parsed = parse_bgeo(_serialize(bgeo))
    assert parsed.header.num_points == len(PARTICLES)
    assert parsed.weights.values == [1.0] * len(PARTICLES)
    assert parsed.positions == bgeo.positions


def test_bytes_roundtrip_uncompressed():
    original = _serialize(bgeo_file_from_particles(PARTICLES))
    reparsed = parse_bgeo(original)
    assert _serialize(reparsed) == original


def test_named_attribute_roundtrip():
    bgeo = BgeoFile(
        header=BgeoHeader(num_points=2, num_point_attrib=1),
        positions=AttributeStorage.vectors(3, [0.5, 1.0, 1.5, 2.0, 2.5, 3.0]),
        weights=AttributeStorage.floats([1.0, 1.0]),
        attribute_definitions=[AttribDefinition("id", 1, BgeoAttributeType.INT, [0])],
        attribute_data=[("id", AttributeStorage.ints([7, 8]))],
    )
    parsed = parse_bgeo(_serialize(bgeo))
    assert parsed.attribute_definitions == bgeo.attribute_definitions
    assert parsed.attribute_data == bgeo.attribute_data
    assert _serialize(parsed) == _serialize(bgeo)


def test_unknown_attribute_type():
    data = _header(num_point_attrib=1) + _attr(b"foo", 1, 3, [0])
    with pytest.raises(BgeoParseError) as info:
        parse_bgeo(data)
    assert info.value.first_bgeo_error() == BgeoErrorKind.UNKNOWN_ATTRIBUTE_TYPE


def test_unsupported_attribute_type():
    data = _header(num_point_attrib=1) + _attr(b"name", 1, 2, [0])
    with pytest.raises(BgeoParseError) as info:
        parse_bgeo(data)
    assert info.value.first_bgeo_error() == BgeoErrorKind.UNSUPPORTED_ATTRIBUTE_TYPE


def test_invalid_attribute_name():
    data = _header(num_point_attrib=1) + _attr(b"\xff\xfe", 1, 1, [0])
    with pytest.raises(BgeoParseError) as info:
        parse_bgeo(data)
    assert info.value.first_bgeo_error() == BgeoErrorKind.INVALID_ATTRIBUTE_NAME


def test_truncated_point_data():
    data = _serialize(bgeo_file_from_particles(PARTICLES))
    with pytest.raises(BgeoParseError) as info:
        parse_bgeo(data[:-10])
    assert info.value.error_kinds() == [BgeoErrorKind.UNEXPECTED_END]
    assert info.value.first_bgeo_error() is None


@pytest.mark.parametrize("compressed", [False, True])
def test_load_file_roundtrip(tmp_path, compressed):
    path = tmp_path / "particles.bgeo"
    particles_to_bgeo(PARTICLES, path, compressed)
    assert path.read_bytes().startswith(b"\x1f\x8b") == compressed
    assert particles_from_bgeo(path) == PARTICLES
    assert load_bgeo_file(path).header.num_points == len(PARTICLES)


def test_load_gzip_equals_raw(tmp_path):
    raw = _serialize(bgeo_file_from_particles(PARTICLES))
    raw_path = tmp_path / "raw.bgeo"
    gz_path = tmp_path / "gz.bgeo"
    raw_path.write_bytes(raw)
    gz_path.write_bytes(gzip.compress(raw))
    assert load_bgeo_file(gz_path) == load_bgeo_file(raw_path)