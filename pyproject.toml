[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sphsurface"
version = "0.1.0"
description = "SPH kernel functions and particle/mesh file readers and writers (BGEO, JSON, XYZ, OBJ, PLY, VTK)"
requires-python = ">=3.10"
dependencies = []
keywords = ["sph", "particles", "kernel", "bgeo", "vtk", "ply", "obj", "mesh", "fluid"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Science/Research",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Scientific/Engineering :: Physics",
    "Topic :: File Formats",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["sphsurface"]

[tool.pytest.ini_options]
addopts = "-ra"
