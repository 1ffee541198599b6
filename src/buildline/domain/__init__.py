"""Domain layer for BUILDLINE.

Pure build metadata (project, modules, dependency declarations, image
descriptors), stage outcomes and the error taxonomy. No I/O lives here.

Dependency rule: imports only the standard library.
"""
