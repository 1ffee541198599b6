"""Service layer for BUILDLINE.

Implements the build use-cases: the root formatting policy, dependency
resolution, the per-module stage pipeline and its scheduling, and the
command handlers behind the message bus.

Dependency rule: may import `buildline.domain` and `buildline.interfaces`,
but not `buildline.adapters` or `buildline.entrypoints`.
"""
