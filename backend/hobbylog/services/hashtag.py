"""Hashtag extraction from Markdown text.

Two forms are recognized::

    #SimpleTag          bare form
    #{Multi Word Tag}   braced form, allows spaces and punctuation

Extra leading ``#`` characters (``##tag``) are treated as heading noise and
stripped. Anything inside fenced (```) or inline (`) code spans is ignored.
Names are returned exactly as written; resolving them case-insensitively is
the caller's job.
"""

from __future__ import annotations

import re

from hobbylog.services.exceptions import ValidationError

# Characters allowed in a bare hashtag: ASCII word characters plus - . @ :
# and Hiragana, Katakana and CJK unified ideographs.
BARE_TAG_CHARS = r"A-Za-z0-9_\-.@:\u3040-\u309F\u30A0-\u30FF\u4E00-\u9FAF"

# Braced alternative first so "#{...}" never falls through to the bare form.
HASHTAG_PATTERN = re.compile(
    rf"#+(?:\{{(?P<braced>[^}}]*)\}}|(?P<bare>[{BARE_TAG_CHARS}]+))"
)

# Fenced blocks before inline spans so ``` is not read as three empty spans.
CODE_SPAN_PATTERN = re.compile(r"```.*?```|`[^`]*`", re.DOTALL)

# A "#{" with no closing brace anywhere after it
UNCLOSED_BRACE_PATTERN = re.compile(r"#+\{[^}]*\Z")


def strip_code_spans(text: str) -> str:
    """Blank out fenced and inline code spans.

    Each span is replaced with a single space so text on either side of it
    cannot fuse into a new hashtag.
    """
    return CODE_SPAN_PATTERN.sub(" ", text)


def extract_hashtags(text: str | None) -> list[str]:
    """Extract referenced tag names from Markdown text.

    Args:
        text: Markdown or plain text. ``None`` is treated as empty.

    Returns:
        Tag names in order of first appearance, deduplicated by their exact
        (case-sensitive) spelling.

    Raises:
        ValidationError: If a braced hashtag outside code is never closed.
    """
    if not text:
        return []

    visible = strip_code_spans(text)
    unclosed = UNCLOSED_BRACE_PATTERN.search(visible)
    if unclosed:
        raise ValidationError(
            f"Unclosed braced hashtag: {unclosed.group(0)[:40]!r}"
        )

    seen: set[str] = set()
    names: list[str] = []

    for match in HASHTAG_PATTERN.finditer(visible):
        braced = match.group("braced")
        name = braced.strip() if braced is not None else match.group("bare")
        if not name or name in seen:
            continue
        seen.add(name)
        names.append(name)

    return names
