"""Text clean-up and language detection applied to extracted text."""

from __future__ import annotations

import re

# Lone UTF-16 surrogates appear when extractor output is decoded with
# ``surrogateescape``; they cannot be encoded into JSON request bodies.
_SURROGATES = re.compile("[\ud800-\udfff]")
_ARABIC_SCRIPT = re.compile("[\u0600-\u06ff]")


def clean_text(text: str) -> str:
    """Remove unpaired surrogate code units from *text*."""
    return _SURROGATES.sub("", text)


def detect_language(text: str) -> str:
    """Return ``"AR"`` when *text* contains any Arabic-script character, else ``"EN"``.

    Mixed-script text counts as Arabic.
    """
    return "AR" if _ARABIC_SCRIPT.search(text) else "EN"
