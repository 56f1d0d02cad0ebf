"""
Text helpers shared by the guide parser and the page builder.

All helpers are pure string functions:
- HTML escaping for element content and attribute values
- Decoding of a fixed table of named entities plus numeric references
- Slug generation for anchor ids
- Stripping of inline markdown markers for plain-text titles
"""
import re

# Named entities the guide content is known to carry. Anything else is left alone.
NAMED_ENTITIES = {
    "&amp;": "&",
    "&lt;": "<",
    "&gt;": ">",
    "&quot;": '"',
    "&#039;": "'",
    "&apos;": "'",
    "&nbsp;": " ",
    "&mdash;": "—",
    "&ndash;": "–",
    "&hellip;": "…",
    "&ldquo;": "“",
    "&rdquo;": "”",
    "&lsquo;": "‘",
    "&rsquo;": "’",
}

ENTITY_RE = re.compile(r'&(?:#[xX][0-9a-fA-F]+|#\d+|[A-Za-z][A-Za-z0-9]*);')
_SLUG_STRIP_RE = re.compile(r'[^a-z0-9]+')
_INLINE_CODE_RE = re.compile(r'`([^`\n]+)`')
_BOLD_MARK_RE = re.compile(r'\*\*(.+?)\*\*')
_ITALIC_MARK_RE = re.compile(r'(?<![\w*])\*(?![\s*])([^*\n]+?)(?<!\s)\*(?![\w*])')


def escape_html(s: str) -> str:
    """Escape HTML special characters including quotes."""
    if not s:
        return ""
    return (s.replace("&", "&amp;")
             .replace("<", "&lt;")
             .replace(">", "&gt;")
             .replace('"', "&quot;")
             .replace("'", "&#x27;"))


def _decode_numeric(ref: str):
    if ref[2:3] in ("x", "X"):
        code = int(ref[3:-1], 16)
    else:
        code = int(ref[2:-1])
    # NUL, surrogates and out-of-range values stay as written
    if code == 0 or 0xD800 <= code <= 0xDFFF or code > 0x10FFFF:
        return None
    return chr(code)


def decode_html_entities(s: str) -> str:
    """
    Decode known named entities and numeric character references.

    Unrecognised entities pass through unchanged.
    """
    if not s or "&" not in s:
        return s or ""

    def replace(match):
        entity = match.group(0)
        if entity in NAMED_ENTITIES:
            return NAMED_ENTITIES[entity]
        if entity.startswith("&#"):
            decoded = _decode_numeric(entity)
            if decoded is not None:
                return decoded
        return entity

    return ENTITY_RE.sub(replace, s)


def slugify(text: str) -> str:
    """Lowercase, collapse non-alphanumeric runs to '-', trim hyphens."""
    if not text:
        return ""
    return _SLUG_STRIP_RE.sub("-", text.lower()).strip("-")


def strip_inline_markup(text: str) -> str:
    """Remove bold, italic and inline-code markers, keeping their text."""
    if not text:
        return ""
    text = _INLINE_CODE_RE.sub(r'\1', text)
    text = _BOLD_MARK_RE.sub(r'\1', text)
    text = _ITALIC_MARK_RE.sub(r'\1', text)
    return text.strip()


def plain_title(text: str) -> str:
    """Plain-text form of a heading: markers stripped and entities decoded."""
    return decode_html_entities(strip_inline_markup(text))
