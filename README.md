# sphsurface

Building blocks for working with SPH (smoothed particle hydrodynamics) particle data:

- SPH kernel functions: a cubic spline kernel, and a precomputed lookup-table version of it that you query with squared distances.
- Readers and writers for particle and mesh files:
  - BGEO (classic binary format): read and write, with optional gzip compression.
  - JSON: read and write.
  - Binary XYZ: read.
  - OBJ: write meshes, with vertex normals.
  - PLY (ASCII and binary): read particles and surface meshes.
  - Legacy VTK: read ASCII or big-endian binary files, write big-endian binary files.

The package uses only the standard library.

## Installation

```
pip install .
```

## Kernels

```python
from sphsurface.kernel import CubicSplineKernel, DiscreteSquaredDistanceCubicKernel

h = 0.1
kernel = CubicSplineKernel(h)
kernel.evaluate(0.02)                        # kernel value at radial distance r
kernel.evaluate_gradient((0.01, 0.0, 0.02))  # gradient vector at a position
kernel.evaluate_gradient_norm(0.02)          # radial derivative at distance r (negative inside the support)

# Lookup table: h*h is split into n segments; query with a squared distance
table = DiscreteSquaredDistanceCubicKernel(10000, h)
table.evaluate(0.02 ** 2)
```

The kernel is zero at and beyond the compact support radius `h`, and its integral over space is 1.
`evaluate_gradient` at the origin returns NaN components. `DiscreteSquaredDistanceCubicKernel` raises
`ValueError` for a non-positive `n` and for a squared radius that cannot be mapped to a table entry
(negative or not finite). Squared radii beyond `h*h` map to the last entry.

## Particle files

Particles are sequences of `(x, y, z)` triples. Readers return lists of float tuples.

```python
from sphsurface.json_format import particles_from_json, particles_to_json
from sphsurface.xyz_format import particles_from_xyz
from sphsurface.bgeo import particles_to_bgeo
from sphsurface.bgeo_parser import particles_from_bgeo
from sphsurface.vtk_format import particles_from_vtk, particles_to_vtk
from sphsurface.ply_format import particles_from_ply

particles = [(0.0, 0.0, 0.0), (1.0, 2.0, 3.0)]

particles_to_json(particles, "particles.json")
particles_from_json("particles.json")

particles_to_bgeo(particles, "particles.bgeo", enable_compression=True)
particles_from_bgeo("particles.bgeo")

particles_to_vtk(particles, "particles.vtk")
particles_from_vtk("particles.vtk")
```

- JSON files hold an array of coordinate triples, e.g. `[[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]]`. Anything else raises `ValueError`. Non-finite coordinates are written as `null`.
- `particles_from_xyz` reads a binary file of consecutive 32-bit float triples in native byte order. An incomplete trailing triple is ignored.
- BGEO coordinates are stored as 32-bit floats. `particles_from_bgeo` and `load_bgeo_file` detect gzip compression themselves.
- `particles_to_vtk` writes one vertex cell per particle.
- `particles_from_ply` reads the `x`, `y` and `z` float properties of the `vertex` element.

### BGEO in detail

`sphsurface.bgeo` holds the file model: `BgeoFile`, `BgeoHeader`, `AttribDefinition`, `AttributeStorage` and `BgeoAttributeType`. Use `bgeo_file_from_particles` and `particles_from_bgeo_file` to convert between particles and a `BgeoFile`. `write_bgeo_file(bgeo, stream, enable_compression)` writes to any binary stream.

`sphsurface.bgeo_parser` reads files. `parse_bgeo(data)` parses uncompressed bytes. `load_bgeo_file(path)` returns a `BgeoFile`. `parse_header_magic(data)` checks only the magic bytes.

Input that cannot be parsed raises `BgeoParseError`, which is a `ValueError`. The error carries a backtrace of entries. `error_kinds()` lists all of their kinds. `first_bgeo_error()` returns the first kind that is a format error, as a `BgeoErrorKind`. For example, a file in the newer BGEO format gives `UNSUPPORTED_FORMAT_VERSION`, and a file without the `Bgeo` magic bytes gives `MAGIC_BYTES_NOT_FOUND`.

## Meshes

```python
from sphsurface.obj_format import TriMesh3d, MeshAttribute, MeshWithData, mesh_to_obj
from sphsurface.ply_format import surface_mesh_from_ply
from sphsurface.vtk_format import surface_mesh_from_vtk, VtkFile

mesh = surface_mesh_from_ply("cube.ply")   # MeshWithData carrying a "normals" point attribute
mesh_to_obj(mesh, "cube.obj")              # writes "f a//a ..." lines when normals are present

pieces = VtkFile.load_file("surface.vtk").into_pieces()
pieces[0].point_attribute_names()
pieces[0].load_point_attributes(["density"])
```

- `TriMesh3d` holds vertices and index triangles. `MeshWithData` adds point and cell attributes. `MeshWithData.with_point_data` returns a copy with one more point attribute.
- `surface_mesh_from_ply` expects a `vertex` element with float `x y z nx ny nz` properties. It also expects a `face` element with a `list ... uint vertex_indices` property of exactly three indices.
- `surface_mesh_from_vtk` reads an unstructured grid made only of triangle cells.
- `load_point_attributes` supports two kinds of point attribute:
  - single-component attributes of unsigned int, float or double, returned as floats;
  - three-component attributes of float or double, returned as vectors.
- The lower-level VTK functions are `read_vtk`, `write_vtk(piece, filename, title)` and `VtkDataPiece.from_particles`.

Problems with PLY input raise `PlyError`. Problems with VTK input raise `VtkError`. Both are subclasses of `ValueError`.

## What this package does not do

The package does not reconstruct surfaces from particles. It has no density maps, no marching cubes, no neighborhood search and no octree decomposition. It provides no command-line program: all functionality is used from Python.

## Tests

```
pip install .[test]
pytest
```