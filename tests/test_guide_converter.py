"""
Unit tests for guide_converter.py

Tests DOCX preprocessing, post-processing and filename helpers.
"""
import io
import os
import sys
import tempfile
import unittest
import zipfile
from unittest.mock import MagicMock, patch

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import guide_converter


def make_docx(files: dict) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return buffer.getvalue()


MINIMAL_DOCX = {
    "[Content_Types].xml": "<Types/>",
    "word/styles.xml": (
        '<w:styles><w:rPr><w:rFonts w:ascii="Cambria" w:hAnsiTheme="majorHAnsi"/>'
        '<w:color w:val="4F81BD"/></w:rPr></w:styles>'
    ),
    "word/document.xml": '<w:document><w:color w:val="1F497D" w:themeColor="accent1"/></w:document>',
    "word/theme/theme1.xml": '<a:latin typeface="Cambria"/>',
}


class TestPreprocessGuideForDocx(unittest.TestCase):
    """Test guide markdown preprocessing for DOCX conversion."""

    def test_insert_blank_line_before_list(self):
        """Test blank line is inserted before bullet list."""
        result = guide_converter._preprocess_guide_for_docx("Some text\n- Item 1\n- Item 2")
        self.assertIn("Some text\n\n- Item 1\n- Item 2", result)

    def test_no_extra_blank_for_existing(self):
        """Test no extra blank line if already present."""
        result = guide_converter._preprocess_guide_for_docx("Some text\n\n- Item 1")
        self.assertEqual(result, "Some text\n\n- Item 1")

    def test_remove_blank_between_bullets(self):
        """Test blank lines between bullets are removed."""
        result = guide_converter._preprocess_guide_for_docx("Text\n\n- Item 1\n\n- Item 2\n\n\n- Item 3")
        self.assertIn("- Item 1\n- Item 2\n- Item 3", result)

    def test_label_gets_single_blank_line(self):
        """Test a bare label is separated from its answer by one blank line."""
        result = guide_converter._preprocess_guide_for_docx("**Your Answer**:\nIt depends.")
        self.assertEqual(result, "**Your Answer**:\n\nIt depends.")
        result = guide_converter._preprocess_guide_for_docx("**Action:**\n\n\n\nSteps")
        self.assertEqual(result, "**Action:**\n\nSteps")

    def test_label_with_value_untouched(self):
        """Test labels carrying an inline value stay on one line."""
        content = "**Simple Answer**: Yes\nMore"
        self.assertEqual(guide_converter._preprocess_guide_for_docx(content), content)

    def test_question_quotes_follow_policy(self):
        """Test question titles are unquoted by default and quoted on request."""
        content = '### Q1: "What is IaC?"'
        self.assertEqual(guide_converter._preprocess_guide_for_docx(content), "### Q1: What is IaC?")
        self.assertEqual(
            guide_converter._preprocess_guide_for_docx(content, quote_question_titles=True),
            '### Q1: "What is IaC?"',
        )
        self.assertEqual(
            guide_converter._preprocess_guide_for_docx("### Q2: “Curly?”", quote_question_titles=True),
            '### Q2: "Curly?"',
        )

    def test_code_fences_untouched(self):
        """Test lines inside fences are passed through."""
        content = 'Intro\n```\n- a\n\n- b\n**Label**:\n### Q1: "x"\n```'
        self.assertEqual(guide_converter._preprocess_guide_for_docx(content), content)

    def test_crlf_normalized(self):
        """Test Windows line endings are normalized."""
        result = guide_converter._preprocess_guide_for_docx("Text\r\n- a\r\n")
        self.assertNotIn("\r", result)


class TestPostprocessDocx(unittest.TestCase):
    """Test DOCX restyling."""

    def setUp(self):
        data = guide_converter._postprocess_docx(make_docx(MINIMAL_DOCX))
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            self.files = {name: zf.read(name).decode("utf-8") for name in zf.namelist()}

    def test_colours_removed(self):
        """Test heading colours are stripped from styles and document."""
        self.assertNotIn("w:color", self.files["word/styles.xml"])
        self.assertNotIn("w:color", self.files["word/document.xml"])

    def test_fonts_replaced(self):
        """Test Cambria and theme fonts become the guide font."""
        styles = self.files["word/styles.xml"]
        self.assertNotIn("Cambria", styles)
        self.assertIn('w:ascii="Latin Modern Roman"', styles)
        self.assertIn('w:hAnsi="Latin Modern Roman"', styles)
        self.assertIn('typeface="Latin Modern Roman"', self.files["word/theme/theme1.xml"])

    def test_other_parts_preserved(self):
        """Test parts outside the restyle set are copied as-is."""
        self.assertEqual(self.files["[Content_Types].xml"], "<Types/>")
        self.assertEqual(set(self.files), set(MINIMAL_DOCX))


class TestCheckDocxDependencies(unittest.TestCase):
    """Test dependency checking."""

    def test_returns_tuple(self):
        """Test function returns a (bool, str) tuple."""
        available, message = guide_converter.check_docx_dependencies()
        self.assertIsInstance(available, bool)
        self.assertIsInstance(message, str)

    def test_missing_pypandoc(self):
        """Test a missing pypandoc is reported."""
        with patch.object(guide_converter, "HAS_PYPANDOC", False):
            available, message = guide_converter.check_docx_dependencies()
        self.assertFalse(available)
        self.assertIn("pypandoc", message)

    def test_missing_pandoc_binary(self):
        """Test a missing pandoc binary is reported."""
        with patch.object(guide_converter, "HAS_PYPANDOC", True), \
                patch("guide_converter.shutil.which", return_value=None):
            available, message = guide_converter.check_docx_dependencies()
        self.assertFalse(available)
        self.assertIn("pandoc is not found", message)

    def test_all_present(self):
        """Test both dependencies present."""
        with patch.object(guide_converter, "HAS_PYPANDOC", True), \
                patch("guide_converter.shutil.which", return_value="/usr/bin/pandoc"):
            self.assertEqual(guide_converter.check_docx_dependencies(), (True, ""))


class TestConvertMarkdownToDocx(unittest.TestCase):
    """Test conversion with pandoc mocked out."""

    def fake_pandoc(self):
        mock = MagicMock()

        def convert_file(source, to, outputfile, extra_args):
            with open(source, encoding="utf-8") as f:
                self.seen_markdown = f.read()
            with open(outputfile, "wb") as f:
                f.write(make_docx(MINIMAL_DOCX))

        mock.convert_file.side_effect = convert_file
        return mock

    def test_missing_dependencies_raise(self):
        """Test ImportError when DOCX export is unavailable."""
        with patch.object(guide_converter, "check_docx_dependencies", return_value=(False, "no pandoc")):
            with self.assertRaises(ImportError):
                guide_converter.convert_markdown_to_docx("# Guide")

    def test_converts_preprocessed_markdown(self):
        """Test pandoc receives preprocessed markdown and output is restyled."""
        mock = self.fake_pandoc()
        with patch.object(guide_converter, "check_docx_dependencies", return_value=(True, "")), \
                patch.object(guide_converter, "pypandoc", mock):
            data = guide_converter.convert_markdown_to_docx('### Q1: "Why?"\nText\n- a')

        self.assertEqual(self.seen_markdown, "### Q1: Why?\nText\n\n- a")
        self.assertEqual(mock.convert_file.call_args.kwargs["extra_args"], guide_converter.PANDOC_ARGS)
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            self.assertNotIn("Cambria", zf.read("word/styles.xml").decode("utf-8"))

    def test_writes_output_path(self):
        """Test the DOCX is also written when a path is given."""
        mock = self.fake_pandoc()
        with tempfile.TemporaryDirectory() as tmpdir:
            target = os.path.join(tmpdir, "out.docx")
            with patch.object(guide_converter, "check_docx_dependencies", return_value=(True, "")), \
                    patch.object(guide_converter, "pypandoc", mock):
                data = guide_converter.convert_markdown_to_docx("Text", output_path=target)
            with open(target, "rb") as f:
                self.assertEqual(f.read(), data)

    def test_pandoc_failure_raises_runtime_error(self):
        """Test pandoc errors surface as RuntimeError."""
        mock = MagicMock()
        mock.convert_file.side_effect = OSError("boom")
        with patch.object(guide_converter, "check_docx_dependencies", return_value=(True, "")), \
                patch.object(guide_converter, "pypandoc", mock):
            with self.assertRaises(RuntimeError) as ctx:
                guide_converter.convert_markdown_to_docx("Text")
        self.assertIn("boom", str(ctx.exception))


class TestSanitizeFilenameForFormat(unittest.TestCase):
    """Test filename sanitization for different formats."""

    def test_basic_docx(self):
        """Test basic DOCX filename."""
        self.assertEqual(guide_converter.sanitize_filename_for_format("guide", ".docx"), "guide.docx")

    def test_removes_existing_extension(self):
        """Test existing extension is removed."""
        self.assertEqual(guide_converter.sanitize_filename_for_format("guide.md", ".html"), "guide.html")
        self.assertEqual(guide_converter.sanitize_filename_for_format("prep.MARKDOWN", ".docx"), "prep.docx")

    def test_spaces_become_underscores(self):
        """Test whitespace runs collapse to underscores."""
        self.assertEqual(
            guide_converter.sanitize_filename_for_format("Pulumi  Interview Prep.md", ".docx"),
            "Pulumi_Interview_Prep.docx",
        )

    def test_empty_name(self):
        """Test empty or fully stripped names get the default."""
        self.assertEqual(guide_converter.sanitize_filename_for_format("", ".docx"), "interview-guide.docx")
        self.assertEqual(guide_converter.sanitize_filename_for_format("<>", ".html"), "interview-guide.html")

    def test_path_characters_removed(self):
        """Test path separators cannot escape the download name."""
        result = guide_converter.sanitize_filename_for_format("../../etc/passwd", ".html")
        self.assertNotIn("/", result)
        self.assertFalse(result.startswith("."))

    def test_byte_limit_respected(self):
        """Test filename respects byte limits."""
        result = guide_converter.sanitize_filename_for_format("文" * 100, ".docx")
        self.assertLessEqual(len(result.encode("utf-8")), 255)
        self.assertTrue(result.endswith(".docx"))


if __name__ == "__main__":
    unittest.main()
