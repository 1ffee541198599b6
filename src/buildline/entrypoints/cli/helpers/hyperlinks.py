"""OSC-8 hyperlinks for build output.

Build summaries point at files (build reports, JUnit reports, image
tarballs). On terminals that understand OSC-8 those paths become clickable
``file://`` links; everywhere else (pipes, CI logs, dumb terminals) the plain
text is printed unchanged.
"""

import os
import sys
from pathlib import Path
from typing import TextIO

_OSC8_PROGRAMS = {"apple_terminal", "vscode", "iterm.app", "wezterm", "kitty"}


def supports_osc8(stream: TextIO | None = None) -> bool:
    """Best-effort check whether ``stream`` (default stdout) renders OSC-8 links.

    Non-TTY streams never do. Otherwise a conservative allowlist of terminal
    identifiers is consulted.
    """
    stream = stream or sys.stdout
    if not getattr(stream, "isatty", lambda: False)():
        return False
    terminal_program = (os.getenv("TERM_PROGRAM") or "").lower()
    return bool(
        terminal_program in _OSC8_PROGRAMS
        or os.getenv("WT_SESSION")  # Windows Terminal
        or os.getenv("VTE_VERSION")  # GNOME Terminal, Tilix, etc.
        or os.getenv("TERM", "").startswith(("alacritty", "konsole"))
    )


def hyperlink(url: str, label: str | None = None, stream: TextIO | None = None) -> str:
    """Render ``label`` (default: ``url``) as a link to ``url`` when supported."""
    text = label or url
    if not supports_osc8(stream):
        return text
    return f"\x1b]8;;{url}\x07{text}\x1b]8;;\x07"  # OSC 8 ; ; URL BEL


def file_link(path: Path, base: Path | None = None, stream: TextIO | None = None) -> str:
    """Link to a local file, labelled relative to ``base`` when it is below it."""
    path = path.resolve()
    label = str(path)
    if base is not None:
        try:
            label = path.relative_to(base.resolve()).as_posix()
        except ValueError:
            pass
    return hyperlink(path.as_uri(), label, stream)
