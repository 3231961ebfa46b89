import gzip
import io
import struct

import pytest

from sphsurface.bgeo import (
    AttribDefinition,
    AttributeStorage,
    BgeoAttributeType,
    BgeoFile,
    BgeoHeader,
    bgeo_file_from_particles,
    particles_from_bgeo_file,
    particles_to_bgeo,
    write_bgeo_file,
)

PARTICLES = [(0.5, -1.25, 3.0), (1.0, 2.0, 4.0), (-8.0, 0.25, 0.0)]


def _write(bgeo, compress=False):
    buffer = io.BytesIO()
    write_bgeo_file(bgeo, buffer, compress)
    return buffer.getvalue()


@pytest.mark.parametrize(
    "code, expected",
    [
        (0, BgeoAttributeType.FLOAT),
        (1, BgeoAttributeType.INT),
        (2, BgeoAttributeType.STRING),
        (4, BgeoAttributeType.INDEXED_STRING),
        (5, BgeoAttributeType.VECTOR),
    ],
)
def test_attribute_type_codes(code, expected):
    assert BgeoAttributeType.from_code(code) is expected
    assert expected.value == code


def test_unknown_attribute_type_code():
    with pytest.raises(ValueError):
        BgeoAttributeType.from_code(3)


def test_storage_counts():
    storage = AttributeStorage.vectors(3, [1, 2, 3, 4, 5, 6])
    assert storage.num_points() == 2
    assert len(storage) == 6
    ints = AttributeStorage.ints([7, 8, 9])
    assert ints.num_points() == len(ints) == 3


def test_storage_rejects_string_type():
    with pytest.raises(ValueError):
        AttributeStorage(BgeoAttributeType.STRING, [])


def test_header_from_particles():
    bgeo = bgeo_file_from_particles(PARTICLES)
    header = bgeo.header
    assert header.magic_bytes == b"Bgeo"
    assert header.version_char == 86
    assert header.version == 5
    assert header.num_points == len(PARTICLES)
    assert header.num_point_attrib == 0
    assert bgeo.weights.values == [1.0] * len(PARTICLES)
    assert bgeo.positions.size == 3
    assert bgeo.attribute_definitions == []


def test_particles_round_trip_through_structure():
    bgeo = bgeo_file_from_particles(PARTICLES)
    assert particles_from_bgeo_file(bgeo) == PARTICLES


def test_coordinates_are_rounded_to_single_precision():
    (x, _, _), = particles_from_bgeo_file(bgeo_file_from_particles([(0.1, 0.0, 0.0)]))
    assert x != 0.1
    assert abs(x - 0.1) < 1e-7


def test_out_of_range_coordinate():
    with pytest.raises(ValueError):
        bgeo_file_from_particles([(1e39, 0.0, 0.0)])


def test_positions_must_be_vectors():
    bgeo = bgeo_file_from_particles(PARTICLES)
    bgeo.positions = AttributeStorage.floats([1.0, 2.0, 3.0])
    with pytest.raises(ValueError):
        particles_from_bgeo_file(bgeo)


def test_written_header_and_end_bytes():
    data = _write(bgeo_file_from_particles(PARTICLES))
    assert data.startswith(b"BgeoV" + struct.pack(">i", 5) + struct.pack(">i", len(PARTICLES)))
    assert data.endswith(b"\x00\xff")


def test_written_point_records():
    data = _write(bgeo_file_from_particles(PARTICLES))
    for particle in PARTICLES:
        assert struct.pack(">3f", *particle) + struct.pack(">f", 1.0) in data


def test_each_point_adds_same_record_size():
    one = _write(bgeo_file_from_particles(PARTICLES[:1]))
    two = _write(bgeo_file_from_particles(PARTICLES[:2]))
    three = _write(bgeo_file_from_particles(PARTICLES))
    assert len(three) - len(two) == len(two) - len(one)


def test_compression_round_trip():
    bgeo = bgeo_file_from_particles(PARTICLES)
    assert gzip.decompress(_write(bgeo, True)) == _write(bgeo)


def test_attribute_definitions_and_data_written():
    bgeo = BgeoFile(
        header=BgeoHeader(num_points=2, num_point_attrib=1),
        positions=AttributeStorage.vectors(3, [0.0] * 6),
        weights=AttributeStorage.floats([1.0, 1.0]),
        attribute_definitions=[
            AttribDefinition("id", 1, BgeoAttributeType.INT, [0])
        ],
        attribute_data=[("id", AttributeStorage.ints([11, 12]))],
    )
    data = _write(bgeo)
    definition = struct.pack(">H", 2) + b"id" + struct.pack(">H", 1) + struct.pack(">i", 1)
    assert definition + struct.pack(">i", 0) in data
    assert struct.pack(">f", 1.0) + struct.pack(">i", 12) + b"\x00\xff" == data[-10:]


def test_short_storage_is_an_error():
    bgeo = bgeo_file_from_particles(PARTICLES)
    bgeo.weights = AttributeStorage.floats([1.0])
    with pytest.raises(ValueError):
        _write(bgeo)


@pytest.mark.parametrize("compress", [False, True])
def test_particles_to_bgeo_file(tmp_path, compress):
    path = tmp_path / "particles.bgeo"
    particles_to_bgeo(PARTICLES, path, compress)
    expected = _write(bgeo_file_from_particles(PARTICLES))
    content = path.read_bytes()
    if compress:
        content = gzip.decompress(content)
    assert content == expected