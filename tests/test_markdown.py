from backend.app.utils.markdown import markdown_to_html


def test_non_string_and_empty_input_returned_unchanged():
    assert markdown_to_html("") == ""
    assert markdown_to_html(None) is None
    assert markdown_to_html(42) == 42


def test_headers_and_inline_formatting():
    html = markdown_to_html("## Risks\n\nThe **API** is *public*.")
    assert '<h2 class="markdown-h2">Risks</h2>' in html
    assert '<strong class="markdown-bold">API</strong>' in html
    assert '<em class="markdown-italic">public</em>' in html
    assert html.count('<p class="markdown-paragraph">') == 1


def test_raw_html_is_escaped():
    html = markdown_to_html("<script>alert(1)</script>")
    assert "<script>" not in html
    assert "&lt;script&gt;" in html


def test_code_blocks_are_not_formatted():
    html = markdown_to_html("```python\nx = a**b**c\n```")
    assert html.startswith('<pre class="markdown-code-block"><code class="language-python">')
    assert "markdown-bold" not in html
    assert "x = a**b**c" in html


def test_inline_code_escaped():
    html = markdown_to_html("Use `<div>` tags")
    assert '<code class="markdown-inline-code">&lt;div&gt;</code>' in html


def test_links_open_in_new_tab():
    html = markdown_to_html("See [docs](https://example.com/a?b=1&c=2)")
    assert 'href="https://example.com/a?b=1&c=2"' in html
    assert 'target="_blank" rel="noopener noreferrer"' in html


def test_lists_are_grouped():
    html = markdown_to_html("Steps:\n\n- enable MFA\n- rotate keys\n\n1. first\n2. second")
    assert '<ul class="markdown-list"><li class="markdown-list-item">enable MFA</li>' in html
    assert html.count('<li class="markdown-list-item">') == 4
    assert '<ol class="markdown-list">' in html


def test_single_newlines_become_breaks():
    html = markdown_to_html("line one\nline two")
    assert html == '<p class="markdown-paragraph">line one<br class="markdown-br">line two</p>'


def test_links_with_unsafe_schemes_render_as_text():
    html = markdown_to_html("Click [x](javascript:alert(1)) or [y](data:text/html,hi)")
    assert 'href="javascript' not in html
    assert "<a " not in html
    assert "Click x or y" in html


def test_link_url_keeps_balanced_parentheses():
    html = markdown_to_html("[Lambda](https://en.wikipedia.org/wiki/Lambda_(function)) docs")
    assert 'href="https://en.wikipedia.org/wiki/Lambda_(function)"' in html
    assert "</a> docs" in html


def test_mailto_links_are_kept():
    html = markdown_to_html("Mail [ops](mailto:ops@example.com)")
    assert 'href="mailto:ops@example.com"' in html
