"""
Guide Export Utilities

Converts an interview guide's markdown to a Word document through pandoc:
- Guide-specific preprocessing (question headings, labeled fields, lists)
- DOCX post-processing to drop pandoc's default colours and fonts
- Filename sanitising for downloads

Notes:
- pypandoc and the pandoc binary are optional; callers check
  check_docx_dependencies() before offering DOCX export
- Filenames are truncated by UTF-8 byte length, not characters
"""
import io
import logging
import os
import re
import shutil
import tempfile
import zipfile
from typing import Optional, Tuple

# pypandoc is optional: DOCX export is disabled without it
try:
    import pypandoc
    HAS_PYPANDOC = True
except ImportError:
    HAS_PYPANDOC = False
    pypandoc = None

logger = logging.getLogger(__name__)

DOCX_FONT = "Latin Modern Roman"
PANDOC_ARGS = ["--standalone", "--highlight-style=pygments", "--dpi=96"]

_BULLET_RE = re.compile(r'^(\s*)[-*]\s')
_QUESTION_HEADING_RE = re.compile(r'^(###\s+Q\d+:\s*)["“](.+)["”]\s*$')
_LABEL_LINE_RE = re.compile(r'^(\*\*[^*]+(?::\*\*|\*\*:))\s*$')
_COLOR_RE = re.compile(r'<w:color\s+w:val="[0-9A-Fa-f]{6}"\s*/>')
_THEME_COLOR_RE = re.compile(r'<w:color[^>]*w:themeColor="[^"]*"[^>]*/>')
_CAMBRIA_ATTR_RE = re.compile(r'w:(ascii|hAnsi|eastAsia|cs)="Cambria"')
_THEME_FONT_RE = re.compile(r'w:(ascii|hAnsi|eastAsia|cs)(?:Theme|theme)="[^"]*"')


# ---------- Markdown preprocessing ----------

def _is_bullet_line(line: str) -> bool:
    return bool(_BULLET_RE.match(line))


def _preprocess_guide_for_docx(content: str, quote_question_titles: bool = False) -> str:
    """
    Rewrite guide markdown into a form pandoc lays out well.

    - Question headings follow the chosen quote policy
    - A label alone on its line ("**Your Answer**:") gets a blank line
      after it so the answer becomes its own paragraph
    - Bullet lists get a blank line before them and none between items
    """
    lines = content.replace("\r\n", "\n").split("\n")
    result = []
    in_fence = False

    i = 0
    while i < len(lines):
        line = lines[i]

        if line.lstrip().startswith("```"):
            in_fence = not in_fence
            result.append(line)
            i += 1
            continue
        if in_fence:
            result.append(line)
            i += 1
            continue

        question = _QUESTION_HEADING_RE.match(line)
        if question:
            prefix, title = question.groups()
            line = f'{prefix}"{title}"' if quote_question_titles else f"{prefix}{title}"

        if _LABEL_LINE_RE.match(line):
            result.append(line)
            result.append("")
            i += 1
            while i < len(lines) and not lines[i].strip():
                i += 1
            continue

        if _is_bullet_line(line):
            if result and result[-1].strip() and not _is_bullet_line(result[-1]):
                result.append("")
            result.append(line)

            # Drop blank lines between consecutive bullets
            j = i + 1
            while j < len(lines) and not lines[j].strip():
                j += 1
            if j < len(lines) and _is_bullet_line(lines[j]):
                i = j
                continue
        else:
            result.append(line)

        i += 1

    return "\n".join(result)


# ---------- DOCX post-processing ----------

def _restyle_xml(name: str, content: str) -> str:
    if name in ("word/styles.xml", "word/document.xml"):
        content = _COLOR_RE.sub("", content)
        content = _THEME_COLOR_RE.sub("", content)
    if name == "word/styles.xml":
        content = _CAMBRIA_ATTR_RE.sub(lambda m: f'w:{m.group(1)}="{DOCX_FONT}"', content)
        content = _THEME_FONT_RE.sub(lambda m: f'w:{m.group(1)}="{DOCX_FONT}"', content)
    if name == "word/theme/theme1.xml":
        content = content.replace('typeface="Cambria"', f'typeface="{DOCX_FONT}"')
    return content


def _postprocess_docx(docx_bytes: bytes) -> bytes:
    """Strip pandoc's heading colours and swap Cambria for the guide font."""
    restyled = {"word/styles.xml", "word/document.xml", "word/theme/theme1.xml"}
    output = io.BytesIO()
    with zipfile.ZipFile(io.BytesIO(docx_bytes), "r") as zin, \
            zipfile.ZipFile(output, "w", zipfile.ZIP_DEFLATED) as zout:
        for item in zin.infolist():
            data = zin.read(item.filename)
            if item.filename in restyled:
                data = _restyle_xml(item.filename, data.decode("utf-8")).encode("utf-8")
            zout.writestr(item, data)
    return output.getvalue()


# ---------- Conversion ----------

def check_docx_dependencies() -> Tuple[bool, str]:
    """
    Check if DOCX conversion dependencies are available.

    Returns:
        Tuple of (is_available, error_message)
    """
    if not HAS_PYPANDOC:
        return False, "pypandoc is not installed. Install with: pip install pypandoc"

    if shutil.which("pandoc") is None:
        return False, (
            "pandoc is not found on the system. Install with:\n"
            "  - macOS: brew install pandoc\n"
            "  - Ubuntu/Debian: apt-get install pandoc\n"
            "  - Windows: choco install pandoc"
        )

    return True, ""


def convert_markdown_to_docx(
    markdown_content: str,
    output_path: Optional[str] = None,
    quote_question_titles: bool = False,
) -> bytes:
    """
    Convert guide markdown to DOCX.

    Args:
        markdown_content: The guide markdown
        output_path: Optional path to also write the DOCX file to
        quote_question_titles: Keep quotes around question titles

    Returns:
        The DOCX file content as bytes

    Raises:
        ImportError: If pypandoc or pandoc is missing
        RuntimeError: If the pandoc conversion fails
    """
    available, error = check_docx_dependencies()
    if not available:
        raise ImportError(error)

    content = _preprocess_guide_for_docx(markdown_content, quote_question_titles)

    with tempfile.TemporaryDirectory() as tmpdir:
        source = os.path.join(tmpdir, "guide.md")
        target = os.path.join(tmpdir, "guide.docx")

        with open(source, "w", encoding="utf-8") as f:
            f.write(content)

        try:
            pypandoc.convert_file(source, "docx", outputfile=target, extra_args=PANDOC_ARGS)
        except Exception as e:
            raise RuntimeError(f"Pandoc conversion failed: {e}") from e

        with open(target, "rb") as f:
            docx_bytes = _postprocess_docx(f.read())

    logger.info("Converted guide to DOCX (%d bytes)", len(docx_bytes))

    if output_path:
        with open(output_path, "wb") as f:
            f.write(docx_bytes)

    return docx_bytes


def sanitize_filename_for_format(name: str, extension: str) -> str:
    """
    Sanitize a download filename and give it `extension`.

    Args:
        name: The base filename
        extension: The target extension (e.g. '.docx', '.html')

    Returns:
        Sanitized filename with the correct extension
    """
    fallback = f"interview-guide{extension}"
    if not name:
        return fallback

    name = re.sub(r'[^\w\s._-]', '', name)
    name = re.sub(r'\s+', '_', name)
    name = name.strip('._-')

    for ext in ('.html', '.htm', '.md', '.markdown', '.docx'):
        if name.lower().endswith(ext):
            name = name[:-len(ext)]
            break

    if not name:
        return fallback

    # 255-byte limit applies to the encoded name
    max_base_bytes = 255 - len(extension.encode("utf-8"))
    while len(name.encode("utf-8")) > max_base_bytes:
        name = name[:-1]

    return name + extension
