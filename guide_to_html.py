"""
Interview Guide -> Offline HTML, with Streamlit UI

Builds a single self-contained study page from an interview-guide markdown
file: Bootstrap cards for sections, questions and STAR stories, a sidebar
outline, in-page search, dark mode, per-question progress tracking and
copy buttons on code blocks.

Security notes:
- All guide text is escaped by the parser before it reaches the page
- The search index is embedded as JSON with '<', '>' and '&' escaped so it
  cannot close its <script> element
- Vendor filenames are validated and resolved inside ./vendor only
- The content width option is validated before it is written into CSS
"""
import json
import logging
import os
import re
from typing import Dict, List, Optional

import streamlit as st
import streamlit.components.v1 as components
try:
    import tomli as toml  # Python < 3.11
except ImportError:
    try:
        import tomllib as toml  # Python >= 3.11
    except ImportError:
        toml = None

from guide_converter import (check_docx_dependencies, convert_markdown_to_docx,
                             sanitize_filename_for_format)
from guide_outline import build_search_index, missing_questions, render_navigation
from guide_parser import MarkdownTransformer, ParseResult
from guide_text import escape_html

logger = logging.getLogger(__name__)

# ---------- App config ----------
APP_TITLE = "Interview Guide -> Offline HTML"
APP_DIR = os.path.dirname(os.path.abspath(__file__))
VENDOR_DIR = os.path.join(APP_DIR, "vendor")
BOOTSTRAP_CSS_FILE = "bootstrap.min.css"
BOOTSTRAP_CDN = "https://cdn.jsdelivr.net/npm/bootstrap@5.3.3/dist/css/bootstrap.min.css"
BOOTSTRAP_ICONS_CDN = "https://cdn.jsdelivr.net/npm/bootstrap-icons@1.11.3/font/bootstrap-icons.min.css"
PROGRESS_STORAGE_KEY = "interviewProgress"
THEME_STORAGE_KEY = "guideTheme"

DEFAULT_CONFIG = {
    "title": "",
    "subtitle": "",
    "default_language": "typescript",
    "quote_question_titles": False,
    "expected_questions": 0,
    "content_width": "1100px",
}

_CONFIG_TYPES = {
    "title": str,
    "subtitle": str,
    "default_language": str,
    "quote_question_titles": bool,
    "expected_questions": int,
    "content_width": str,
}


# ---------- Helpers ----------
@st.cache_data
def read_text_file(path: str) -> str:
    """Read text file with error handling."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            return f.read()
    except OSError as e:
        st.error(f"Failed to read {path}: {e}")
        st.stop()

def validate_vendor_path(base_dir: str, filename: str) -> str:
    """Resolve a vendor file inside base_dir, stopping the app on traversal."""
    if not re.match(r'^[a-zA-Z0-9][a-zA-Z0-9._-]*$', filename):
        st.error(f"Invalid filename: {filename}")
        st.stop()
    base_resolved = os.path.abspath(base_dir)
    resolved = os.path.abspath(os.path.join(base_dir, filename))
    if not resolved.startswith(base_resolved + os.sep):
        st.error("Path traversal detected")
        st.stop()
    return resolved

@st.cache_data
def load_vendor_css() -> str:
    """Return vendored Bootstrap CSS, or "" when the page should link the CDN."""
    path = validate_vendor_path(VENDOR_DIR, BOOTSTRAP_CSS_FILE)
    if not os.path.exists(path):
        st.warning("bootstrap.min.css not found in vendor folder. The page will load Bootstrap from a CDN.")
        return ""
    return read_text_file(path)

def escape_json_for_script(data) -> str:
    """Serialize data as JSON that is safe inside a <script> element."""
    return (json.dumps(data, ensure_ascii=False)
            .replace("&", "\\u0026")
            .replace("<", "\\u003c")
            .replace(">", "\\u003e"))

def validate_css_size(value: str) -> bool:
    """Validate CSS size value to prevent injection."""
    if not value:
        return False
    return bool(re.match(r'^\d+(\.\d+)?(px|%|em|rem|vw)$', value))

def sanitize_css_size(value: str, default: str) -> str:
    """Sanitize CSS size value, return default if invalid."""
    if validate_css_size(value):
        return value
    logger.warning("Invalid CSS size %r, using %s", value, default)
    return default


# ---------- Guide config ----------

def parse_guide_config(data: Dict) -> Dict:
    """Merge the [guide] table of a parsed guide.toml over the defaults."""
    config = dict(DEFAULT_CONFIG)
    table = data.get("guide", {}) if isinstance(data, dict) else {}
    for key, value in table.items():
        expected = _CONFIG_TYPES.get(key)
        if expected is None:
            logger.warning("Ignoring unknown guide.toml key: %s", key)
            continue
        # bool is an int subclass; keep the two apart
        if not isinstance(value, expected) or (expected is int and isinstance(value, bool)):
            logger.warning("Ignoring guide.toml key %s: expected %s", key, expected.__name__)
            continue
        config[key] = value
    if config["expected_questions"] < 0:
        config["expected_questions"] = 0
    return config

def load_guide_config(toml_path: str) -> Dict:
    """Read guide.toml; fall back to defaults when it cannot be parsed."""
    if toml is None:
        st.warning("TOML parser not available. Install 'tomli' for Python < 3.11 or use Python >= 3.11")
        return dict(DEFAULT_CONFIG)

    try:
        with open(toml_path, "rb") as f:
            data = toml.load(f)
    except (OSError, toml.TOMLDecodeError) as e:
        st.warning(f"Failed to parse {os.path.basename(toml_path)}: {e}")
        return dict(DEFAULT_CONFIG)
    return parse_guide_config(data)

def detect_title(md_text: str) -> str:
    """First '# ' heading of the guide, or a generic title."""
    match = re.search(r'^#\s+([^\n]+)', md_text, re.MULTILINE)
    return match.group(1).strip() if match else "Interview Guide"


# ---------- HTML Generation ----------

def generate_css(content_width: str = "1100px") -> str:
    """Page CSS layered over Bootstrap."""
    width = sanitize_css_size(content_width, DEFAULT_CONFIG["content_width"])
    return "".join([
        f":root{{--guide-width:{width}}}",
        "body{scroll-behavior:smooth}",
        ".guide-layout{display:flex;min-height:100vh}",
        ".sidebar{width:300px;flex-shrink:0;position:sticky;top:0;height:100vh;overflow-y:auto;border-right:1px solid var(--bs-border-color)}",
        ".sidebar .nav-link{color:var(--bs-body-color)}",
        ".sidebar .nav-link:hover{color:var(--bs-primary)}",
        "main.guide{flex:1;max-width:var(--guide-width);padding:1.5rem 2rem}",
        "section.major-section,.question-container,.subsection{scroll-margin-top:1rem}",
        ".code-container pre{background:var(--bs-tertiary-bg);border:1px solid var(--bs-border-color);border-radius:.4rem;padding:1rem;overflow:auto}",
        ".copy-button{opacity:.75}.copy-button:hover{opacity:1}",
        ".answer-block,.experience-block{border-left:4px solid var(--bs-success);padding:.5rem 1rem;margin:1rem 0;background:var(--bs-success-bg-subtle)}",
        ".key-points,.why-built,.key-methods,.implementation-block,.unit-tests{margin:1rem 0}",
        ".critical-point{border-left:4px solid var(--bs-warning);padding:.5rem 1rem;margin:1rem 0}",
        ".mistake-alert{border-left:4px solid var(--bs-danger);padding:.5rem 1rem;margin:1rem 0;background:var(--bs-danger-bg-subtle)}",
        ".star-story{border:1px solid var(--bs-info);border-radius:.4rem;padding:1rem;margin:1rem 0}",
        ".question-container .card-header{position:relative;padding-right:3rem}",
        ".question-done{position:absolute;right:1rem;top:50%;transform:translateY(-50%)}",
        "#searchResults a{display:block;padding:.15rem 0;text-decoration:none}",
        "@media (max-width:900px){.guide-layout{display:block}.sidebar{position:static;width:auto;height:auto}}",
        "@media print{.sidebar,#themeToggle,.copy-button,.question-done,#progressWrap{display:none!important}}",
    ])

def generate_header(title: str, subtitle: str, progress_enabled: bool) -> str:
    """Page header with title, subtitle, theme toggle and progress bar."""
    subtitle_html = f'<p class="lead mb-0">{escape_html(subtitle)}</p>' if subtitle else ""
    progress_html = (
        '<div id="progressWrap" class="mt-3 d-flex align-items-center gap-3">'
        '<div class="progress flex-grow-1" style="height:1.5rem">'
        '<div id="progressBar" class="progress-bar bg-success" role="progressbar" style="width:0%">0% Complete</div>'
        '</div>'
        '<button id="progressReset" type="button" class="btn btn-sm btn-outline-secondary">Reset</button>'
        '</div>'
        if progress_enabled else ""
    )
    return (
        '<header class="section-header mb-4">'
        '<div class="d-flex justify-content-between align-items-start">'
        f'<h1 class="display-5">{escape_html(title)}</h1>'
        '<button id="themeToggle" type="button" class="btn btn-outline-secondary" aria-label="Toggle dark mode">'
        '<i class="bi bi-moon"></i></button>'
        '</div>'
        f'{subtitle_html}{progress_html}'
        '</header>'
    )

def generate_sidebar(navigation_html: str, search_enabled: bool) -> str:
    """Sidebar holding the search box and the outline navigation."""
    search_html = (
        '<div class="p-3" role="search">'
        '<input id="searchInput" type="search" class="form-control" placeholder="Search questions..." aria-label="Search questions">'
        '<div id="searchResults" class="mt-2 small" aria-live="polite"></div>'
        '</div>'
        if search_enabled else ""
    )
    return f'<nav class="sidebar bg-body-tertiary" aria-label="Guide outline">{search_html}<div class="p-2">{navigation_html}</div></nav>'

def generate_javascript(search_enabled: bool, progress_enabled: bool) -> str:
    """Page behaviour: copy buttons, theme, search and progress tracking."""
    constants = (
        f"  var SEARCH_ENABLED = {'true' if search_enabled else 'false'};\n"
        f"  var PROGRESS_ENABLED = {'true' if progress_enabled else 'false'};\n"
        f"  var PROGRESS_KEY = {json.dumps(PROGRESS_STORAGE_KEY)};\n"
        f"  var THEME_KEY = {json.dumps(THEME_STORAGE_KEY)};\n"
    )
    main_js = """
  function store(key, value){ try{ localStorage.setItem(key, value); }catch(e){} }
  function load(key){ try{ return localStorage.getItem(key); }catch(e){ return null; } }

  // Copy buttons on code blocks
  document.querySelectorAll('.copy-button').forEach(function(btn){
    btn.addEventListener('click', function(){
      var code = btn.parentElement.querySelector('code');
      if (!code || !navigator.clipboard) return;
      navigator.clipboard.writeText(code.textContent).then(function(){
        var icon = btn.querySelector('i');
        icon.classList.replace('bi-clipboard', 'bi-check');
        setTimeout(function(){ icon.classList.replace('bi-check', 'bi-clipboard'); }, 2000);
      });
    });
  });

  // Dark mode
  var root = document.documentElement;
  var themeBtn = document.getElementById('themeToggle');
  function setTheme(t){
    root.setAttribute('data-bs-theme', t);
    themeBtn.querySelector('i').className = t === 'dark' ? 'bi bi-sun' : 'bi bi-moon';
    store(THEME_KEY, t);
  }
  setTheme(load(THEME_KEY) || root.getAttribute('data-bs-theme') || 'light');
  themeBtn.addEventListener('click', function(){
    setTheme(root.getAttribute('data-bs-theme') === 'dark' ? 'light' : 'dark');
  });

  // Search over the embedded outline index
  if (SEARCH_ENABLED){
    var index = JSON.parse(document.getElementById('guide-index').textContent);
    var input = document.getElementById('searchInput');
    var results = document.getElementById('searchResults');
    input.addEventListener('input', function(){
      var q = input.value.trim().toLowerCase();
      results.innerHTML = '';
      if (!q) return;
      var hits = index.filter(function(e){
        return e.title.toLowerCase().indexOf(q) !== -1 || e.text.toLowerCase().indexOf(q) !== -1;
      });
      if (!hits.length){
        var none = document.createElement('p');
        none.className = 'text-muted';
        none.textContent = 'No results found';
        results.appendChild(none);
        return;
      }
      hits.forEach(function(e){
        var a = document.createElement('a');
        a.href = '#' + e.id;
        a.textContent = e.title;
        var sec = document.createElement('span');
        sec.className = 'text-muted d-block';
        sec.textContent = e.section;
        a.appendChild(sec);
        results.appendChild(a);
      });
    });
  }

  // Per-question progress
  if (PROGRESS_ENABLED){
    var cards = Array.prototype.slice.call(document.querySelectorAll('.question-container'));
    function readProgress(){ try{ return JSON.parse(load(PROGRESS_KEY) || '{}'); }catch(e){ return {}; } }
    function updateBar(){
      var progress = readProgress();
      var done = cards.filter(function(c){ return progress[c.id]; }).length;
      var pct = cards.length ? Math.round(done * 100 / cards.length) : 0;
      var bar = document.getElementById('progressBar');
      bar.style.width = pct + '%';
      bar.textContent = pct + '% Complete (' + done + '/' + cards.length + ')';
    }
    cards.forEach(function(card){
      var header = card.querySelector('.card-header');
      var box = document.createElement('input');
      box.type = 'checkbox';
      box.className = 'form-check-input question-done';
      box.setAttribute('aria-label', 'Mark as completed');
      box.checked = !!readProgress()[card.id];
      box.addEventListener('change', function(){
        var progress = readProgress();
        progress[card.id] = box.checked;
        store(PROGRESS_KEY, JSON.stringify(progress));
        updateBar();
      });
      header.appendChild(box);
    });
    document.getElementById('progressReset').addEventListener('click', function(){
      if (!confirm('Reset your progress?')) return;
      store(PROGRESS_KEY, '{}');
      document.querySelectorAll('.question-done').forEach(function(b){ b.checked = false; });
      updateBar();
    });
    updateBar();
  }
"""
    return f"<script>\n(function(){{\n{constants}{main_js}}})();\n</script>"

@st.cache_data(show_spinner=False)
def parse_document(md_text: str, default_language: str = "",
                   quote_question_titles: bool = False) -> ParseResult:
    """Parse the guide once per (text, options); the page and the checks share it."""
    transformer = MarkdownTransformer(
        default_language=default_language or DEFAULT_CONFIG["default_language"],
        quote_question_titles=quote_question_titles,
    )
    return transformer.parse(md_text)

def parse_with_config(md_text: str, config: Dict) -> ParseResult:
    return parse_document(md_text, config.get("default_language", ""),
                          config.get("quote_question_titles", False))

@st.cache_data(show_spinner="Building HTML...")
def build_html(md_text: str, config: Dict, bootstrap_css: str = "",
               search_enabled: bool = True, progress_enabled: bool = True,
               dark_default: bool = False) -> str:
    """Build the complete offline study page."""
    outline, body_html = parse_with_config(md_text, config)

    title = config.get("title") or outline.title or "Interview Guide"
    bootstrap_tag = (
        f"<style>\n{bootstrap_css}\n</style>\n" if bootstrap_css
        else f'<link rel="stylesheet" href="{BOOTSTRAP_CDN}">\n'
    )
    index_tag = (
        f'<script id="guide-index" type="application/json">{escape_json_for_script(build_search_index(outline))}</script>\n'
        if search_enabled else ""
    )

    return (
        "<!doctype html>\n"
        f"<html lang=\"en\" data-bs-theme=\"{'dark' if dark_default else 'light'}\">\n"
        "<head>\n"
        "<meta charset=\"utf-8\">\n"
        "<meta name=\"viewport\" content=\"width=device-width,initial-scale=1\">\n"
        f"<title>{escape_html(title)}</title>\n"
        f"{bootstrap_tag}"
        f'<link rel="stylesheet" href="{BOOTSTRAP_ICONS_CDN}">\n'
        f"<style>\n{generate_css(config.get('content_width', DEFAULT_CONFIG['content_width']))}\n</style>\n"
        "</head>\n"
        "<body>\n"
        "<div class=\"guide-layout\">\n"
        f"{generate_sidebar(render_navigation(outline), search_enabled)}\n"
        "<main class=\"guide\" id=\"content\">\n"
        f"{generate_header(title, config.get('subtitle', ''), progress_enabled)}\n"
        f"{body_html}\n"
        "</main>\n"
        "</div>\n"
        f"{index_tag}"
        f"{generate_javascript(search_enabled, progress_enabled)}\n"
        "</body>\n"
        "</html>"
    )

def check_completeness(md_text: str, config: Dict) -> List[str]:
    """Expected questions (from config) that the guide does not contain."""
    expected = config.get("expected_questions", 0)
    if not expected:
        return []
    outline, _ = parse_with_config(md_text, config)
    return missing_questions(outline, expected)


# ---------- Streamlit UI ----------

def main():
    st.set_page_config(page_title=APP_TITLE, layout="wide")
    st.title(APP_TITLE)
    st.caption("Turn an interview-prep markdown guide into one offline HTML page with navigation, search, dark mode and progress tracking.")

    uploaded_filename: Optional[str] = None
    md_text = ""
    config = dict(DEFAULT_CONFIG)

    with st.container(border=True):
        st.subheader("Source")
        uploaded = st.file_uploader("Upload the guide (.md)", type=["md", "markdown"])
        if uploaded is not None:
            try:
                md_text = uploaded.read().decode("utf-8-sig")
                uploaded_filename = uploaded.name
            except (UnicodeDecodeError, OSError) as e:
                st.error(f"Failed to read file: {e}")
        md_text = st.text_area("Or paste the guide markdown", value=md_text, height=260,
                               placeholder='## SECTION 1: CORE CONCEPTS\n\n### Q1: "..."')

        config_upload = st.file_uploader("Optional guide.toml", type=["toml"])
        if config_upload is not None:
            if toml is None:
                st.warning("TOML parser not available. Install 'tomli' for Python < 3.11 or use Python >= 3.11")
            else:
                try:
                    config = parse_guide_config(toml.loads(config_upload.read().decode("utf-8")))
                except (UnicodeDecodeError, toml.TOMLDecodeError) as e:
                    st.error(f"Failed to parse guide.toml: {e}")

    st.divider()

    with st.container(border=True):
        st.subheader("Options")
        col1, col2 = st.columns([1, 1], gap="medium")
        with col1:
            title = st.text_input("Page title", value=config["title"], placeholder="Taken from the first # heading")
            subtitle = st.text_input("Subtitle", value=config["subtitle"])
            default_language = st.text_input("Default code language", value=config["default_language"])
            expected_questions = st.number_input("Expected number of questions", min_value=0,
                                                 value=config["expected_questions"], step=1)
        with col2:
            search_enabled = st.toggle("Enable search", value=True)
            progress_enabled = st.toggle("Enable progress tracking", value=True)
            dark_default = st.toggle("Start in dark mode", value=False)
            quote_titles = st.toggle("Show question titles in quotes", value=config["quote_question_titles"])

    config.update({
        "title": title,
        "subtitle": subtitle,
        "default_language": default_language,
        "expected_questions": int(expected_questions),
        "quote_question_titles": quote_titles,
    })

    st.divider()

    build_col, preview_col = st.columns([1, 3], gap="large")
    with build_col:
        st.subheader("Build")
        if st.button("Build HTML", type="primary", use_container_width=True):
            if not md_text.strip():
                st.warning("Provide the guide via upload or paste.")
            else:
                try:
                    html = build_html(md_text, config, load_vendor_css(),
                                      search_enabled, progress_enabled, dark_default)
                    missing = check_completeness(md_text, config)
                    if missing:
                        st.warning(f"Missing questions: {', '.join(missing)}")

                    base_name = uploaded_filename or config["title"] or detect_title(md_text)
                    st.session_state["generated_html"] = html
                    st.session_state["generated_name"] = sanitize_filename_for_format(base_name, ".html")
                    st.session_state["source_markdown"] = md_text
                    st.success("HTML built successfully!")
                except Exception as e:
                    logger.exception("Guide build failed")
                    st.error(f"Build failed: {e}")

        if "generated_html" in st.session_state:
            st.download_button(
                "Download offline HTML",
                data=st.session_state["generated_html"].encode("utf-8"),
                file_name=st.session_state.get("generated_name", "interview-guide.html"),
                mime="text/html",
                use_container_width=True,
            )

            docx_ok, docx_error = check_docx_dependencies()
            if not docx_ok:
                st.caption(docx_error)
            elif st.button("Build DOCX", use_container_width=True):
                try:
                    docx_bytes = convert_markdown_to_docx(
                        st.session_state["source_markdown"],
                        quote_question_titles=config["quote_question_titles"],
                    )
                    st.session_state["generated_docx"] = docx_bytes
                except (ImportError, RuntimeError) as e:
                    st.error(str(e))

            if "generated_docx" in st.session_state:
                st.download_button(
                    "Download DOCX",
                    data=st.session_state["generated_docx"],
                    file_name=sanitize_filename_for_format(st.session_state["generated_name"], ".docx"),
                    mime="application/vnd.openxmlformats-officedocument.wordprocessingml.document",
                    use_container_width=True,
                )

    with preview_col:
        st.subheader("Preview")
        if "generated_html" in st.session_state:
            components.html(st.session_state["generated_html"], height=650, scrolling=True)
        else:
            st.info("Build to see a live preview here.")


if __name__ == "__main__":
    main()
