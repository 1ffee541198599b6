"""BUILDLINE

A multi-module build-and-package pipeline for Python source trees.
It formats, compiles, tests, archives and containerizes the modules declared
in a project descriptor, honoring the dependency graph between them.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
