"""Bootstrap (composition root) for BUILDLINE.

Assembles the application at runtime: loads the project descriptor, wires
concrete adapters (package index, registry client, artifact repository, test
runner) into the service-layer handlers and returns them behind a message bus.

Import rules:
- Entry points import *this* package (not adapters/service_layer/interfaces/domain).
- This package may import: `buildline.adapters`, `buildline.service_layer`,
  `buildline.interfaces`, `buildline.domain`, and `buildline.config`.
- Inner layers must not import `buildline.bootstrap`.
"""

from .bootstrap import AppContainer, bootstrap

__all__ = ["AppContainer", "bootstrap"]
