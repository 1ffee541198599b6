"""Interfaces (ports) for BUILDLINE.

Abstract contracts the service layer depends on: the content-addressed file
store, the package index, the image registry, the test runner and the id
generator. Concrete implementations live in `buildline.adapters`.

Dependency rule: may import `buildline.domain`; never `buildline.adapters`.
"""
