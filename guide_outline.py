"""
Outline model for a parsed interview guide.

The outline is the navigation half of a parse result: sections in
document order, each holding question and concept subsections. Helpers
here turn an outline into navigation markup, a search index and
progress figures for the page builder.
"""
import logging
import re
from typing import Dict, Iterable, List, Optional, Set, Tuple, Union

from guide_text import escape_html, slugify

logger = logging.getLogger(__name__)

_SECTION_PREFIX_RE = re.compile(r'^SECTION\s+\d+:\s*', re.IGNORECASE)
_QUESTION_NUMBER_RE = re.compile(r'^Q?(\d+)$', re.IGNORECASE)

# Keyword -> Bootstrap icon, checked in order
SECTION_ICONS = [
    (("concept",), "bi-book"),
    (("question",), "bi-question-circle"),
    (("star", "stories"), "bi-star"),
    (("coding",), "bi-code-slash"),
    (("command",), "bi-terminal"),
]
DEFAULT_SECTION_ICON = "bi-folder"


# ---------- Model ----------

class Question:
    """A numbered interview question under a section."""
    kind = "question"

    def __init__(self, number: str, title: str, id: str):
        self.number = number
        self.title = title
        self.id = id
        self.content = ""
        self.source = ""

    @property
    def label(self) -> str:
        return f"{self.number}: {self.title}"

    def __repr__(self):
        return f"Question(number={self.number}, title={self.title!r}, id={self.id})"


class Concept:
    """A generic titled subsection (concepts, STAR stories, command lists)."""
    kind = "concept"

    def __init__(self, title: str, id: str):
        self.title = title
        self.id = id
        self.content = ""
        self.source = ""

    @property
    def label(self) -> str:
        return self.title

    def __repr__(self):
        return f"Concept(title={self.title!r}, id={self.id})"


Subsection = Union[Question, Concept]


class Section:
    """A major '## ' section of the guide."""
    kind = "section"

    def __init__(self, title: str, id: str):
        self.title = title
        self.id = id
        self.subsections: List[Subsection] = []

    def __repr__(self):
        return f"Section(title={self.title!r}, id={self.id}, subsections={len(self.subsections)})"


class Outline:
    """Sections in document order plus subsections seen before any section."""

    def __init__(self, title: str = ""):
        self.title = title
        self.sections: List[Section] = []
        self.orphans: List[Subsection] = []

    def subsections(self) -> List[Subsection]:
        result = list(self.orphans)
        for section in self.sections:
            result.extend(section.subsections)
        return result

    def questions(self) -> List[Question]:
        return [sub for sub in self.subsections() if isinstance(sub, Question)]

    def find(self, element_id: str):
        for section in self.sections:
            if section.id == element_id:
                return section
        for sub in self.subsections():
            if sub.id == element_id:
                return sub
        return None

    def __repr__(self):
        return f"Outline(title={self.title!r}, sections={len(self.sections)}, orphans={len(self.orphans)})"


class IdRegistry:
    """
    Hands out anchor ids that are unique within one parse.

    The first heading to claim a slug keeps it; later headings with the
    same slug get '-2', '-3', ... Empty slugs fall back to the element kind.
    """

    def __init__(self):
        self._used: Set[str] = set()

    def claim(self, text: str, kind: str) -> str:
        base = slugify(text) or kind
        candidate = base
        n = 1
        while candidate in self._used:
            n += 1
            candidate = f"{base}-{n}"
        if candidate != base:
            logger.debug("Duplicate anchor id %r renamed to %r", base, candidate)
        self._used.add(candidate)
        return candidate


# ---------- Navigation ----------

def short_section_title(title: str) -> str:
    """Drop a leading 'SECTION N:' prefix for compact navigation labels."""
    return _SECTION_PREFIX_RE.sub("", title or "")


def section_icon(title: str) -> str:
    """Pick a Bootstrap icon class from keywords in the section title."""
    lowered = (title or "").lower()
    for keywords, icon in SECTION_ICONS:
        if any(word in lowered for word in keywords):
            return icon
    return DEFAULT_SECTION_ICON


def render_navigation(outline: Outline) -> str:
    """Render the outline as a nested Bootstrap nav list."""
    parts = ['<ul class="nav flex-column">']

    def sub_item(sub: Subsection) -> str:
        icon = "bi-question-circle" if isinstance(sub, Question) else "bi-file-text"
        return (
            '<li class="nav-item">'
            f'<a class="nav-link py-1" href="#{escape_html(sub.id)}">'
            f'<i class="bi {icon}"></i> {escape_html(sub.label)}</a>'
            '</li>'
        )

    for sub in outline.orphans:
        parts.append(sub_item(sub))

    for section in outline.sections:
        parts.append(
            '<li class="nav-item">'
            f'<a class="nav-link" href="#{escape_html(section.id)}">'
            f'<i class="bi {section_icon(section.title)}"></i> '
            f'{escape_html(short_section_title(section.title))}</a>'
        )
        if section.subsections:
            parts.append('<ul class="nav flex-column ms-3 small">')
            parts.extend(sub_item(sub) for sub in section.subsections)
            parts.append('</ul>')
        parts.append('</li>')

    parts.append('</ul>')
    return "".join(parts)


# ---------- Search ----------

def build_search_index(outline: Outline) -> List[Dict[str, str]]:
    """Flatten subsections into JSON-ready search entries."""
    entries = []
    for sub in outline.orphans:
        entries.append(_index_entry(sub, ""))
    for section in outline.sections:
        for sub in section.subsections:
            entries.append(_index_entry(sub, section.title))
    return entries


def _index_entry(sub: Subsection, section_title: str) -> Dict[str, str]:
    return {
        "id": sub.id,
        "kind": sub.kind,
        "title": sub.label,
        "section": section_title,
        "text": " ".join(sub.source.split()),
    }


def search_outline(outline: Outline, query: str, include_body: bool = False) -> List[Dict[str, str]]:
    """Case-insensitive substring search over subsection titles (and bodies)."""
    needle = (query or "").strip().lower()
    if not needle:
        return []
    results = []
    for entry in build_search_index(outline):
        haystack = entry["title"]
        if include_body:
            haystack = f"{haystack} {entry['text']}"
        if needle in haystack.lower():
            results.append(entry)
    return results


# ---------- Progress ----------

def _normalize_question_number(value) -> Optional[str]:
    match = _QUESTION_NUMBER_RE.match(str(value).strip())
    if not match:
        return None
    return f"Q{int(match.group(1))}"


def missing_questions(outline: Outline, expected: Iterable) -> List[str]:
    """
    Return the expected question numbers that the outline does not contain.

    `expected` may hold numbers (3) or labels ("Q3"); an int count is
    shorthand for Q1..Qn. Results come back as "Qn" labels in input order.
    """
    if isinstance(expected, int):
        expected = range(1, expected + 1)
    present = {_normalize_question_number(q.number) for q in outline.questions()}
    missing = []
    for value in expected:
        label = _normalize_question_number(value)
        if label is None:
            raise ValueError(f"Not a question number: {value!r}")
        if label not in present and label not in missing:
            missing.append(label)
    return missing


def question_progress(outline: Outline, completed_ids: Iterable[str]) -> Tuple[int, int, int]:
    """Return (completed, total, percent) for the outline's questions."""
    ids = {q.id for q in outline.questions()}
    total = len(ids)
    if not total:
        return 0, 0, 0
    done = len(ids & set(completed_ids))
    return done, total, round(done * 100 / total)
