"""Markup stripping for navguard.

URLs never carry legitimate HTML, so every tag, attribute and comment is
removed. Text between tags is kept, except inside elements whose content is
code or raw text (``<script>``, ``<style>`` and friends), which goes with them.
"""

from bleach.html5lib_shim import Filter
from bleach.sanitizer import Cleaner

# Elements dropped together with everything inside them.
CONTENT_TAGS = frozenset(
    {"script", "style", "iframe", "noembed", "noframes", "noscript", "template", "title", "xmp"}
)

# bleach escapes these in text nodes; undo them so URL text survives as typed.
# "&lt;"/"&gt;" go first so "&amp;lt;" only loses one level per pass.
_TEXT_ESCAPES = (
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&amp;", "&"),
)


class DropContentFilter(Filter):
    """Remove CONTENT_TAGS elements and every token nested inside them."""

    def __iter__(self):
        depth = 0
        for token in Filter.__iter__(self):
            if token["type"] in ("StartTag", "EndTag") and token["name"] in CONTENT_TAGS:
                if token["type"] == "StartTag":
                    depth += 1
                elif depth:
                    depth -= 1
                continue
            if not depth:
                yield token


def _strip_markup(value: str) -> str:
    # CONTENT_TAGS pass the sanitizer (without attributes) only so the filter
    # can see where they end; nothing else is allowed through.
    cleaner = Cleaner(
        tags=CONTENT_TAGS,
        attributes={},
        protocols=frozenset(),
        strip=True,
        strip_comments=True,
        filters=[DropContentFilter],
    )
    cleaned = cleaner.clean(value)
    for escaped, char in _TEXT_ESCAPES:
        cleaned = cleaned.replace(escaped, char)
    return cleaned


def sanitize(value: str) -> str:
    """Strip tags, attributes and comments from ``value``, keeping text content.

    The strip pass is repeated until it no longer changes the string, so
    entity-encoded markup (``&lt;script&gt;``) is decoded and removed too and
    ``sanitize(sanitize(x)) == sanitize(x)`` always holds.
    """
    if not value:
        return ""
    current = value
    while True:
        cleaned = _strip_markup(current)
        if cleaned == current:
            return cleaned
        current = cleaned
