"""Tests for extractor: title, text, links and selector values."""

from ingestly.services.extractor import extract_links, extract_text, extract_title, select_values

_ARTICLE = """
<html>
<head><title>Fallback Title</title></head>
<body>
  <header><a href="/">Logo</a></header>
  <main>
    <h1>Main  Heading</h1>
    <p>First   paragraph
       spanning lines.</p>
    <ul>
      <li>Item one</li>
      <li><p>Nested paragraph</p></li>
    </ul>
    <div class="share">Share this</div>
  </main>
  <script>console.log("x")</script>
</body>
</html>
"""


class TestExtractTitle:
    def test_prefers_h1(self):
        assert extract_title(_ARTICLE) == "Main Heading"

    def test_falls_back_to_title_tag(self):
        assert extract_title("<title> Only Title </title><p>x</p>") == "Only Title"

    def test_empty_when_missing(self):
        assert extract_title("<p>No title</p>") == ""


class TestExtractText:
    def test_blocks_in_document_order(self):
        assert extract_text(_ARTICLE).split("\n") == [
            "Main Heading",
            "First paragraph spanning lines.",
            "Item one",
            "Nested paragraph",
        ]

    def test_drops_chrome_and_scripts(self):
        text = extract_text(_ARTICLE)
        assert "Logo" not in text
        assert "console" not in text
        assert "Share this" not in text

    def test_empty_document(self):
        assert extract_text("<html><body></body></html>") == ""


class TestExtractLinks:
    def test_resolves_relative_and_skips_non_web(self):
        html = """
        <a href="/about">About</a>
        <a href="post">Post</a>
        <a href="#top">Top</a>
        <a href="mailto:a@b.test">Mail</a>
        <a href="javascript:void(0)">JS</a>
        <a href="ftp://files.test/x">FTP</a>
        <a href="https://other.test/">Other</a>
        """
        assert extract_links(html, "https://example.test/blog/") == [
            "https://example.test/about",
            "https://example.test/blog/post",
            "https://other.test/",
        ]

    def test_honours_base_href(self):
        html = '<base href="https://cdn.example.test/docs/"><a href="intro">Intro</a>'
        assert extract_links(html, "https://example.test/") == ["https://cdn.example.test/docs/intro"]

    def test_deduplicates(self):
        html = '<a href="/a">1</a><a href="/a">2</a>'
        assert extract_links(html, "https://example.test") == ["https://example.test/a"]


class TestSelectValues:
    def test_text_of_matches(self):
        html = '<ul><li class="price">10</li><li class="price"> 20 </li><li class="price"></li></ul>'
        assert select_values(html, "li.price") == ["10", "20"]

    def test_attribute_values(self):
        html = '<img src="/a.png"><img><img src="/b.png">'
        assert select_values(html, "img", "src") == ["/a.png", "/b.png"]

    def test_class_attribute_is_joined(self):
        assert select_values('<p class="a b">x</p>', "p", "class") == ["a b"]
