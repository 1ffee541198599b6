"""CLI helpers for BUILDLINE.

Utilities used by the command-line interface: application loading with
friendly errors, OSC-8 terminal hyperlinks when supported, message emitters
that write to stderr with emoji->ASCII fallbacks, and Rich report tables.
"""

from .app import load_app
from .hyperlinks import hyperlink
from .messages import error, success, warn

__all__ = ["load_app", "warn", "success", "error", "hyperlink"]
