"""Adapters (outbound implementations) for BUILDLINE.

Concrete implementations of `buildline.interfaces`: local and in-memory file
stores, the YAML descriptor loader, the httpx-backed package index and image
registry clients, the pytest subprocess runner and the Docker daemon loader.

Dependency rule: may import `buildline.interfaces` and `buildline.domain`.
"""
