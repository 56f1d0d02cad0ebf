"""
Markdown structure parser for interview guides.

Converts the guide's markdown conventions into Bootstrap-styled HTML and
an outline for navigation. Only the fixed subset the guides use is
recognised:
- '#' document title, '##' sections, '###' subsections
- '### Q<n>: "title"' question headings
- '**Label**:' fields (answers, STAR stories, key points)
- fenced code blocks, inline code, bold and italic spans
- bullet, numbered and checkbox lists, horizontal rules

Parsing is two conceptual passes. Pass A lifts fenced code out of the
text and leaves a placeholder line per block. Pass B walks the remaining
lines through an ordered rule table where the first matching rule wins.
Code content is escaped exactly once, when placeholders are restored.

Each call to parse() builds its own state; a transformer can be shared
freely between callers.
"""
import logging
import re
from typing import List, NamedTuple, Optional, Sequence, Tuple

from guide_outline import Concept, IdRegistry, Outline, Question, Section
from guide_text import ENTITY_RE, decode_html_entities, escape_html, plain_title

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "typescript"

_FENCE_OPEN_RE = re.compile(r'^\s{0,3}```\s*([\w+#.-]+)?\s*$')
_FENCE_CLOSE_RE = re.compile(r'^\s{0,3}```\s*$')
_BLOCK_TOKEN = "\x00CODE{}\x00"
_BLOCK_TOKEN_RE = re.compile(r'\x00CODE(\d+)\x00')
_BLOCK_LINE_RE = re.compile(r'^\x00CODE(\d+)\x00$')
_INLINE_TOKEN_RE = re.compile(r'\x00INLINE(\d+)\x00')
_STAR_TOKEN = "\x00STAR\x00"
_INLINE_CODE_RE = re.compile(r'`([^`\n]+)`')
_BOLD_ITALIC_RE = re.compile(r'\*\*\*(?![\s*])([^*\n]+?)(?<!\s)\*\*\*(?!\*)')
_BOLD_RE = re.compile(r'\*\*(.+?)\*\*')
# An asterisk followed by whitespace is a list marker, never emphasis.
# Italic may wrap a whole <strong> span but never cut through one.
_ITALIC_RE = re.compile(
    r'(?<![\w*])\*(?![\s*])((?:[^*<>\n]|<strong>[^*<>\n]+</strong>)+?)(?<!\s)\*(?![\w*])'
)
_NEVER_RE = re.compile(r'(?!)')

HEADING_RULES = frozenset({"title", "section", "question", "subsection"})


class InvalidInput(TypeError):
    """Raised when the document passed to the parser is not a string."""


class CodeBlock(NamedTuple):
    language: str
    raw_content: str


class LabelSpec(NamedTuple):
    """A '**Label**:' convention and the block it renders as."""
    label: str
    css_class: str
    opens_list: bool = False
    star: bool = False
    ends_star: bool = False


STAR_CLASS = "star-story"

DEFAULT_LABELS = (
    LabelSpec("Your Answer", "answer-block"),
    LabelSpec("Simple Answer", "answer-block"),
    LabelSpec("Your Experience", "experience-block"),
    LabelSpec("Why It Matters", "key-points", opens_list=True),
    LabelSpec("Why Critical", "critical-point"),
    LabelSpec("Key Methods", "key-methods"),
    LabelSpec("Common Mistake", "mistake-alert"),
    LabelSpec("Your Implementation", "implementation-block"),
    LabelSpec("Why You Built Them", "why-built", opens_list=True),
    LabelSpec("Unit Tests (Fast, Mocked)", "unit-tests"),
    LabelSpec("Situation", STAR_CLASS, star=True),
    LabelSpec("Task", STAR_CLASS, star=True),
    LabelSpec("Action", STAR_CLASS, star=True),
    LabelSpec("Result", STAR_CLASS, star=True, ends_star=True),
)

LIST_TAGS = {
    "unordered": ('<ul class="content-list">', "</ul>"),
    "ordered": ('<ol class="content-list">', "</ol>"),
    "checklist": ('<ul class="list-unstyled checklist">', "</ul>"),
}


class ParseResult(NamedTuple):
    outline: Outline
    html: str


class FenceState:
    """Line-to-line state while lifting code fences out of the text."""

    def __init__(self):
        self.inside_code_block = False
        self.code_language: Optional[str] = None


class ParserState:
    """Line-to-line state for the structural pass of a single parse."""

    def __init__(self):
        self.inside_list = False
        self.list_kind: Optional[str] = None
        # css class of the open labeled block, if any
        self.block: Optional[str] = None


# ---------- Inline markup ----------

def render_inline(text: str) -> str:
    """
    Render one text fragment: entities decoded, text escaped, then
    bold/italic spans applied. Inline code is lifted out first and its
    raw content escaped once on the way back in. Asterisks written as
    entities stay literal and never take part in emphasis.
    """
    spans: List[str] = []

    def stash(match):
        spans.append(match.group(1))
        return f"\x00INLINE{len(spans) - 1}\x00"

    def decode(match):
        return decode_html_entities(match.group(0)).replace("*", _STAR_TOKEN)

    text = _INLINE_CODE_RE.sub(stash, text)
    text = escape_html(ENTITY_RE.sub(decode, text))
    text = _BOLD_ITALIC_RE.sub(r'<strong><em>\1</em></strong>', text)
    text = _BOLD_RE.sub(r'<strong>\1</strong>', text)
    text = _ITALIC_RE.sub(r'<em>\1</em>', text)
    text = text.replace(_STAR_TOKEN, "*")
    return _INLINE_TOKEN_RE.sub(
        lambda m: f"<code>{escape_html(spans[int(m.group(1))])}</code>", text
    )


# ---------- Code blocks ----------

def isolate_code_blocks(text: str, default_language: str = DEFAULT_LANGUAGE) -> Tuple[List[str], List[CodeBlock]]:
    """
    Replace every fenced block with a placeholder line.

    Returns the remaining lines and the blocks in encounter order. A fence
    left open runs to the end of the text and still becomes one block.
    """
    state = FenceState()
    lines: List[str] = []
    blocks: List[CodeBlock] = []
    body: List[str] = []

    for line in text.split("\n"):
        if state.inside_code_block:
            if _FENCE_CLOSE_RE.match(line):
                blocks.append(CodeBlock(state.code_language, "\n".join(body)))
                lines.append(_BLOCK_TOKEN.format(len(blocks) - 1))
                state.inside_code_block = False
                state.code_language = None
                body = []
            else:
                body.append(line)
            continue

        match = _FENCE_OPEN_RE.match(line)
        if match:
            state.inside_code_block = True
            state.code_language = match.group(1) or default_language
            continue
        lines.append(line)

    if state.inside_code_block:
        logger.warning("Unterminated %s code fence; closing it at end of document", state.code_language)
        blocks.append(CodeBlock(state.code_language, "\n".join(body)))
        lines.append(_BLOCK_TOKEN.format(len(blocks) - 1))

    return lines, blocks


def render_code_block(block: CodeBlock) -> str:
    return (
        '<div class="code-container position-relative mb-3">'
        '<button class="btn btn-sm btn-outline-secondary position-absolute top-0 end-0 m-2 copy-button" type="button">'
        '<i class="bi bi-clipboard"></i> Copy</button>'
        f'<pre><code class="language-{escape_html(block.language)}">{escape_html(block.raw_content)}</code></pre>'
        '</div>'
    )


def restore_code_blocks(html: str, blocks: Sequence[CodeBlock]) -> str:
    """Swap block placeholders for rendered code. The only place code is escaped."""
    return _BLOCK_TOKEN_RE.sub(lambda m: render_code_block(blocks[int(m.group(1))]), html)


def _restore_code_source(text: str, blocks: Sequence[CodeBlock]) -> str:
    def fence(match):
        block = blocks[int(match.group(1))]
        return f"```{block.language}\n{block.raw_content}\n```"
    return _BLOCK_TOKEN_RE.sub(fence, text)


# ---------- Transformer ----------

class MarkdownTransformer:
    """
    Parses guide markdown into an outline and an HTML fragment.

    Options are fixed at construction; parse() keeps all of its state in
    a per-call run object.
    """

    def __init__(self, default_language: str = DEFAULT_LANGUAGE,
                 quote_question_titles: bool = False,
                 labels: Sequence[LabelSpec] = DEFAULT_LABELS):
        self.default_language = default_language or DEFAULT_LANGUAGE
        self.quote_question_titles = quote_question_titles
        self.labels = {field.label: field for field in labels}

        if self.labels:
            names = sorted(self.labels, key=len, reverse=True)
            label_re = re.compile(
                r'^\*\*(' + "|".join(re.escape(name) for name in names) + r')(?::\*\*|\*\*:)\s*(.*)$'
            )
        else:
            label_re = _NEVER_RE

        # Order is precedence: the first matching rule handles the line.
        self.rules = (
            ("code_block", _BLOCK_LINE_RE, "on_code_block"),
            ("title", re.compile(r'^#\s+(.+?)\s*$'), "on_title"),
            ("section", re.compile(r'^##\s+(.+?)\s*$'), "on_section"),
            ("question", re.compile(r'^###\s+(Q\d+):\s*["“](.+)["”]\s*$'), "on_question"),
            ("subsection", re.compile(r'^###\s+(.+?)\s*$'), "on_subsection"),
            ("label", label_re, "on_label"),
            ("rule", re.compile(r'^\s*-{3,}\s*$'), "on_rule"),
            ("checkbox", re.compile(r'^\s*[-*]\s+\[([ xX])\](?:\s+(.*))?$'), "on_checkbox"),
            ("unordered_item", re.compile(r'^\s*[-*]\s+(.+)$'), "on_unordered_item"),
            ("ordered_item", re.compile(r'^\s*(\d+)[.)]\s+(.+)$'), "on_ordered_item"),
            ("blank", re.compile(r'^\s*$'), "on_blank"),
            ("paragraph", re.compile(r'^(.*)$'), "on_paragraph"),
        )

    def _dispatch(self, line: str):
        for name, pattern, handler in self.rules:
            match = pattern.match(line)
            if match:
                return name, match, handler
        raise AssertionError("paragraph rule matches every line")

    def classify(self, line: str) -> str:
        """Name of the rule that would handle `line`."""
        return self._dispatch(line)[0]

    def parse(self, document: str) -> ParseResult:
        if not isinstance(document, str):
            raise InvalidInput(f"Guide document must be a str, not {type(document).__name__}")

        text = document.replace("\r\n", "\n").replace("\r", "\n").replace("\x00", "\ufffd")
        if text.startswith("\ufeff"):
            text = text[1:]
        lines, blocks = isolate_code_blocks(text, self.default_language)

        run = _ParseRun(self, blocks)
        for line in lines:
            name, match, handler = self._dispatch(line)
            getattr(run, handler)(match)
            run.track_source(name, line)
        run.finish()

        html = restore_code_blocks("\n".join(run.html), blocks)
        logger.debug(
            "Parsed guide: %d sections, %d questions, %d code blocks",
            len(run.outline.sections), len(run.outline.questions()), len(blocks),
        )
        return ParseResult(run.outline, html)


def parse_guide(document: str, **options) -> ParseResult:
    """Parse with a throwaway transformer built from `options`."""
    return MarkdownTransformer(**options).parse(document)


class _ParseRun:
    """Buffers and state for one parse() call."""

    def __init__(self, transformer: MarkdownTransformer, blocks: Sequence[CodeBlock]):
        self.transformer = transformer
        self.blocks = blocks
        self.state = ParserState()
        self.outline = Outline()
        self.ids = IdRegistry()
        self.html: List[str] = []
        self.paragraph: List[str] = []
        self.section: Optional[Section] = None
        self.subsection = None
        self.sub_html: List[str] = []
        self.sub_source: List[str] = []

    # ----- buffers -----

    def emit(self, fragment: str) -> None:
        self.html.append(fragment)
        if self.subsection is not None:
            self.sub_html.append(fragment)

    def track_source(self, rule: str, line: str) -> None:
        if self.subsection is not None and rule not in HEADING_RULES:
            self.sub_source.append(line)

    def flush_paragraph(self) -> None:
        if self.paragraph:
            self.emit(f"<p>{render_inline(' '.join(self.paragraph))}</p>")
            self.paragraph = []

    def open_list(self, kind: str, start: int = 1) -> None:
        state = self.state
        if state.inside_list and state.list_kind == kind:
            return
        self.flush_paragraph()
        self.close_list()
        opening = LIST_TAGS[kind][0]
        if kind == "ordered" and start != 1:
            opening = opening[:-1] + f' start="{start}">'
        self.emit(opening)
        state.inside_list = True
        state.list_kind = kind

    def close_list(self) -> None:
        state = self.state
        if state.inside_list:
            self.emit(LIST_TAGS[state.list_kind][1])
            state.inside_list = False
            state.list_kind = None

    def close_flow(self) -> None:
        self.flush_paragraph()
        self.close_list()

    def close_block(self) -> None:
        self.close_flow()
        if self.state.block:
            self.emit("</div>")
            self.state.block = None

    def close_subsection(self) -> None:
        self.close_block()
        sub = self.subsection
        if sub is None:
            return
        sub.content = restore_code_blocks("\n".join(self.sub_html), self.blocks)
        sub.source = _restore_code_source("\n".join(self.sub_source), self.blocks).strip()
        self.subsection = None
        self.sub_html = []
        self.sub_source = []
        self.emit("</div></div></div>")

    def close_section(self) -> None:
        self.close_subsection()
        if self.section is not None:
            self.emit("</section>")
            self.section = None

    def finish(self) -> None:
        self.close_section()

    def open_subsection(self, sub, container: str, card: str, header: str, heading: str) -> None:
        if self.section is not None:
            self.section.subsections.append(sub)
        else:
            self.outline.orphans.append(sub)
        self.emit(
            f'<div id="{escape_html(sub.id)}" class="{container} mb-4">'
            f'<div class="{card}">'
            f'<div class="card-header {header}"><h3 class="mb-0">{heading}</h3></div>'
            '<div class="card-body">'
        )
        self.subsection = sub

    # ----- rule handlers -----

    def on_code_block(self, match) -> None:
        self.close_flow()
        self.emit(match.group(0))

    def on_title(self, match) -> None:
        self.close_section()
        raw = match.group(1)
        if not self.outline.title:
            self.outline.title = plain_title(raw)
        self.emit(f'<h1 class="guide-title display-5">{render_inline(raw)}</h1>')

    def on_section(self, match) -> None:
        self.close_section()
        raw = match.group(1)
        title = plain_title(raw)
        section = Section(title, self.ids.claim(title, "section"))
        self.outline.sections.append(section)
        self.emit(
            f'<section id="{escape_html(section.id)}" class="major-section mb-5">'
            f'<h2 class="border-bottom pb-2 mb-3">{render_inline(raw)}</h2>'
        )
        self.section = section

    def on_question(self, match) -> None:
        self.close_subsection()
        number, raw = match.group(1), match.group(2)
        title = plain_title(raw)
        question = Question(number, title, self.ids.claim(f"{number} {title}", "question"))
        heading = render_inline(raw)
        if self.transformer.quote_question_titles:
            heading = f"&quot;{heading}&quot;"
        self.open_subsection(
            question, "question-container", "card border-primary",
            "bg-primary text-white", f"{escape_html(number)}: {heading}",
        )

    def on_subsection(self, match) -> None:
        self.close_subsection()
        raw = match.group(1)
        title = plain_title(raw)
        concept = Concept(title, self.ids.claim(title, "concept"))
        self.open_subsection(concept, "subsection", "card", "bg-info text-white", render_inline(raw))

    def on_label(self, match) -> None:
        field = self.transformer.labels[match.group(1)]
        value = match.group(2).strip()
        label = escape_html(field.label)

        if field.star:
            if self.state.block != STAR_CLASS:
                self.close_block()
                self.emit(f'<div class="{STAR_CLASS}">')
                self.state.block = STAR_CLASS
            else:
                self.close_flow()
            if value:
                self.emit(f"<p><strong>{label}:</strong> {render_inline(value)}</p>")
                if field.ends_star:
                    self.close_block()
            else:
                self.emit(f"<h5>{label}:</h5>")
            return

        self.close_block()
        if value:
            self.emit(
                f'<div class="{field.css_class}">'
                f'<p><strong>{label}:</strong> {render_inline(value)}</p></div>'
            )
            return
        self.emit(f'<div class="{field.css_class}"><h5>{label}:</h5>')
        self.state.block = field.css_class
        if field.opens_list:
            self.open_list("unordered")

    def on_rule(self, match) -> None:
        self.close_block()
        self.emit("<hr>")

    def on_checkbox(self, match) -> None:
        self.open_list("checklist")
        checked = " checked" if match.group(1) in "xX" else ""
        self.emit(
            '<li class="form-check">'
            f'<input class="form-check-input" type="checkbox" disabled{checked}>'
            f'<label class="form-check-label">{render_inline(match.group(2) or "")}</label></li>'
        )

    def on_unordered_item(self, match) -> None:
        self.open_list("unordered")
        self.emit(f"<li>{render_inline(match.group(1))}</li>")

    def on_ordered_item(self, match) -> None:
        self.open_list("ordered", int(match.group(1)))
        self.emit(f"<li>{render_inline(match.group(2))}</li>")

    def on_blank(self, match) -> None:
        self.close_flow()

    def on_paragraph(self, match) -> None:
        self.close_list()
        self.paragraph.append(match.group(1).strip())
