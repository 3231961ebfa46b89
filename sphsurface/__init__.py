"""SPH kernel functions and readers and writers for particle and mesh files."""

__version__ = "0.1.0"
__all__ = [
    "kernel",
    "json_format",
    "xyz_format",
    "bgeo",
    "bgeo_parser",
    "obj_format",
    "ply_format",
    "vtk_format",
]