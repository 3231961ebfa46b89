import struct

import pytest

from sphsurface.xyz_format import particles_from_xyz


def _write(path, particles, trailing=b""):
    path.write_bytes(b"".join(struct.pack("=3f", *p) for p in particles) + trailing)


def test_round_trip_exact_values(tmp_path):
    particles = [(1.5, -2.25, 0.0), (8.0, 0.125, -1024.0)]
    path = tmp_path / "p.xyz"
    _write(path, particles)
    assert particles_from_xyz(path) == particles


def test_single_precision_values(tmp_path):
    path = tmp_path / "p.xyz"
    _write(path, [(0.1, 0.2, 0.3)])
    (x, y, z), = particles_from_xyz(path)
    assert x == pytest.approx(0.1, rel=1e-7)
    assert y == pytest.approx(0.2, rel=1e-7)
    assert z == pytest.approx(0.3, rel=1e-7)


def test_trailing_partial_triplet_ignored(tmp_path):
    path = tmp_path / "p.xyz"
    _write(path, [(1.0, 2.0, 3.0)], trailing=b"\x00" * 7)
    assert particles_from_xyz(path) == [(1.0, 2.0, 3.0)]


def test_empty_file(tmp_path):
    path = tmp_path / "empty.xyz"
    path.write_bytes(b"")
    assert particles_from_xyz(path) == []


def test_count_matches_file_size(tmp_path):
    particles = [(float(i), float(i) * 2, float(i) * 3) for i in range(100)]
    path = tmp_path / "many.xyz"
    _write(path, particles)
    result = particles_from_xyz(path)
    assert len(result) == len(particles)
    assert result == particles


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        particles_from_xyz(tmp_path / "missing.xyz")