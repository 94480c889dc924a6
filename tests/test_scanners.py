"""
Tests for Link Scanners
=======================
"""

from linkguard.models import Span
from linkguard.scanners import markdown, plaintext, scan_file, scan_text


def hrefs(pairs):
    return [href for href, _ in pairs]


class TestMarkdown:
    """Tests for the markdown scanner."""

    def test_inline_link(self):
        """Test an inline link."""
        src = "This is a [link](https://example.com/)"
        assert list(markdown(src)) == [("https://example.com/", Span(10, 38))]

    def test_span_covers_the_whole_link(self):
        """Test that the span covers text and destination."""
        src = "See [the guide](docs/guide.md) for more."
        ((href, span),) = list(markdown(src))
        assert src[span.start:span.end] == "[the guide](docs/guide.md)"

    def test_image(self):
        """Test image links."""
        src = "![Look, an image!](https://imgur.com/gallery/f28OkrB)"
        ((href, span),) = list(markdown(src))
        assert href == "https://imgur.com/gallery/f28OkrB"
        assert span == Span(0, len(src))

    def test_title_and_angle_brackets(self):
        """Test titles and angle-bracket destinations."""
        src = '[a](<my file.md> "Title") and [b](other.md \'quoted\')'
        assert hrefs(markdown(src)) == ["my file.md", "other.md"]

    def test_parentheses_in_destination(self):
        """Test balanced parentheses in a destination."""
        src = "[wiki](https://en.wikipedia.org/wiki/Rust_(programming_language))"
        assert hrefs(markdown(src)) == ["https://en.wikipedia.org/wiki/Rust_(programming_language)"]

    def test_nested_brackets_in_text(self):
        """Test brackets inside link text."""
        src = "[see [1]](notes.md)"
        assert hrefs(markdown(src)) == ["notes.md"]

    def test_autolink(self):
        """Test autolinks."""
        src = "Mail <mailto:me@example.com> or visit <https://example.com/>."
        assert hrefs(markdown(src)) == ["mailto:me@example.com", "https://example.com/"]

    def test_reference_links_are_reported_where_used(self):
        """Test reference links, reported at the use site."""
        src = "\n".join([
            "Read [the docs][docs], then [FAQ][] and [Home].",
            "",
            "[docs]: ./docs/index.md",
            "[faq]: <faq.md> \"Frequently asked\"",
            "[home]: /",
            "[unused]: unused.md",
        ])
        pairs = list(markdown(src))
        assert hrefs(pairs) == ["./docs/index.md", "faq.md", "/"]
        first_href, first_span = pairs[0]
        assert src[first_span.start:first_span.end] == "[the docs][docs]"

    def test_first_definition_wins(self):
        """Test that the first definition of a label is used."""
        src = "[x][a]\n\n[a]: first.md\n[A]: second.md\n"
        assert hrefs(markdown(src)) == ["first.md"]

    def test_undefined_reference_is_not_a_link(self):
        """Test that undefined references are plain text."""
        src = "- [x] done\n- [ ] todo\n[to nowhere][nowhere]\n"
        assert list(markdown(src)) == []

    def test_footnotes_are_not_links(self):
        """Test that footnote markers are skipped."""
        src = "Claim[^1].\n\n[^1]: See [source](source.md).\n"
        assert hrefs(markdown(src)) == ["source.md"]

    def test_fenced_code_is_skipped(self):
        """Test that fenced code blocks are skipped."""
        src = "\n".join([
            "before [a](a.md)",
            "```markdown",
            "[b](b.md)",
            "```",
            "~~~",
            "[c](c.md)",
            "~~~",
            "after [d](d.md)",
        ])
        assert hrefs(markdown(src)) == ["a.md", "d.md"]

    def test_unclosed_fence_runs_to_the_end(self):
        """Test that an unclosed fence hides the rest."""
        src = "[a](a.md)\n```\n[b](b.md)\n"
        assert hrefs(markdown(src)) == ["a.md"]

    def test_inline_code_is_skipped(self):
        """Test that inline code is skipped."""
        src = "Use `[x](x.md)` to write [a link](real.md)."
        pairs = list(markdown(src))
        assert hrefs(pairs) == ["real.md"]
        _, span = pairs[0]
        assert src[span.start:span.end] == "[a link](real.md)"

    def test_results_are_ordered_by_position(self):
        """Test that results come in source order."""
        src = "[ref][r] then [inline](i.md) then <https://x.org/>\n\n[r]: r.md\n"
        assert hrefs(markdown(src)) == ["r.md", "i.md", "https://x.org/"]


class TestPlaintext:
    """Tests for the plaintext scanner."""

    def test_single_url(self):
        """Test a single bare URL."""
        assert list(plaintext("hello http://localhost/ world.")) == [
            ("http://localhost/", Span(6, 23)),
        ]

    def test_trailing_punctuation(self):
        """Test that trailing punctuation is trimmed."""
        src = "Visit https://example.com/docs, or https://example.org/faq."
        assert hrefs(plaintext(src)) == ["https://example.com/docs", "https://example.org/faq"]

    def test_balanced_parentheses(self):
        """Test parentheses that belong to the URL."""
        src = "(see https://en.wikipedia.org/wiki/Rust_(programming_language))"
        assert hrefs(plaintext(src)) == ["https://en.wikipedia.org/wiki/Rust_(programming_language)"]

    def test_unbalanced_closing_parenthesis(self):
        """Test a closing parenthesis that doesn't."""
        assert hrefs(plaintext("(https://example.com/)")) == ["https://example.com/"]

    def test_no_urls(self):
        """Test text without URLs."""
        assert list(plaintext("nothing to see here: just text")) == []


class TestScanFile:
    """Tests for file scanning."""

    def test_markdown_file(self, tmp_path):
        """Test that .md files use the markdown scanner."""
        path = tmp_path / "README.md"
        path.write_text("[guide](docs/guide.md) and https://bare.example/\n", encoding="utf-8")
        links = scan_file(path)
        # Bare URLs are not links in markdown
        assert [link.href for link in links] == ["docs/guide.md"]
        assert links[0].file == str(path)

    def test_text_file(self, tmp_path):
        """Test that other files use the plaintext scanner."""
        path = tmp_path / "notes.txt"
        path.write_text("[guide](docs/guide.md) and https://bare.example/\n", encoding="utf-8")
        assert [link.href for link in scan_file(path)] == ["https://bare.example/"]

    def test_scan_text(self):
        """Test scan_text() spans and file names."""
        links = scan_text("[a](a.md)", file="inline")
        assert links[0].href == "a.md"
        assert links[0].file == "inline"
        assert links[0].span == Span(0, 9)
