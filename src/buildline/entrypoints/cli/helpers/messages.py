"""Status lines for the buildline CLI.

Messages go to stderr so stdout stays machine-readable (``--json`` output,
piped tables). Each line starts with a glyph that falls back to ASCII when
the stream's encoding cannot represent the emoji.
"""

import click

GLYPHS = {
    "warn": ("⚠️", "[!]"),
    "success": ("✅", "[OK]"),
    "error": ("❌", "[X]"),
    "skipped": ("⏭️", "[-]"),
}


def _supports_character(character: str) -> bool:
    """Return True if ``character`` can be encoded on stderr."""
    stream = click.get_text_stream("stderr")  # pragma: no mutate
    encoding = getattr(stream, "encoding", None) or "ascii"
    try:
        character.encode(encoding)
    except (UnicodeEncodeError, LookupError):
        return False
    return True


def glyph(kind: str) -> str:
    """Emoji for ``kind`` or its ASCII fallback."""
    emoji, fallback = GLYPHS[kind]
    return emoji if _supports_character(emoji) else fallback


def warn(msg: str) -> None:
    """Yellow warning line on stderr, e.g. ``⚠️  No modules selected.``"""
    click.secho(f"{glyph('warn')}  {msg}", fg="yellow", bold=True, err=True)


def success(msg: str) -> None:
    """Green success line on stderr, e.g. ``✅  BUILD SUCCESSFUL``."""
    click.secho(f"{glyph('success')}  {msg}", fg="green", bold=True, err=True)


def error(msg: str) -> None:
    """Red error line on stderr, e.g. ``❌  BUILD FAILED``."""
    click.secho(f"{glyph('error')}  {msg}", fg="red", bold=True, err=True)
