"""
Markdown to HTML for LLM answers.

Everything outside code spans is HTML escaped before any tag is added, so the
model cannot inject markup.
"""

from __future__ import annotations

import re
from html import escape
from typing import Any

FENCE_RE = re.compile(r"```(\w+)?\n([\s\S]*?)```")
INLINE_CODE_RE = re.compile(r"`([^`]+)`")
HEADER_RES = [
    (re.compile(r"^####\s+(.+)$", re.M), "h4"),
    (re.compile(r"^###\s+(.+)$", re.M), "h3"),
    (re.compile(r"^##\s+(.+)$", re.M), "h2"),
    (re.compile(r"^#\s+(.+)$", re.M), "h1"),
]
BOLD_RES = [re.compile(r"\*\*(.*?)\*\*"), re.compile(r"__(.*?)__")]
ITALIC_RES = [re.compile(r"(?<!\*)\*([^*\n]+?)\*(?!\*)"), re.compile(r"(?<!_)_([^_\n]+?)_(?!_)")]
LINK_RE = re.compile(r"\[([^\]]+)\]\(((?:[^()\s]|\([^()\s]*\))+)\)")
LINK_SCHEMES = ("http", "https", "mailto")
HR_RE = re.compile(r"^[-*_]{3,}$", re.M)
QUOTE_RE = re.compile(r"^&gt;\s+(.+)$", re.M)
UL_ITEM_RE = re.compile(r"^[ \t]*[-*+][ \t]+(.+)$", re.M)
OL_ITEM_RE = re.compile(r"^[ \t]*\d+\.[ \t]+(.+)$", re.M)
BLOCK_RE = re.compile(r"^<(h[1-6]|ul|ol|pre|blockquote|hr)")
STASH_RE = re.compile(r"\x00(\d+)\x00")


def _unescape_url(url: str) -> str:
    return url.replace("&amp;", "&").replace("&lt;", "<").replace("&gt;", ">")


def _link(match: re.Match) -> str:
    url = _unescape_url(match.group(2))
    scheme, sep, _ = url.partition(":")
    if not sep or scheme.lower() not in LINK_SCHEMES:
        return match.group(1)
    return (
        f'<a href="{url}" class="markdown-link" '
        f'target="_blank" rel="noopener noreferrer">{match.group(1)}</a>'
    )


def _group_list(html: str, item_re: re.Pattern, tag: str, marker: str) -> str:
    items: list[str] = []

    def stash_item(match: re.Match) -> str:
        items.append(f'<li class="markdown-list-item">{match.group(1)}</li>')
        return f"{marker}{len(items) - 1}{marker}"

    html = item_re.sub(stash_item, html)
    run_re = re.compile(rf"(?:{marker}\d+{marker}\n?)+")
    item_ref_re = re.compile(rf"{marker}(\d+){marker}")

    def wrap(match: re.Match) -> str:
        content = "".join(items[int(i)] for i in item_ref_re.findall(match.group(0)))
        return f'<{tag} class="markdown-list">{content}</{tag}>'

    return run_re.sub(wrap, html)


def markdown_to_html(text: Any) -> Any:
    if not text or not isinstance(text, str):
        return text

    code: list[str] = []

    def stash(fragment: str) -> str:
        code.append(fragment)
        return f"\x00{len(code) - 1}\x00"

    html = text.strip()
    html = FENCE_RE.sub(
        lambda m: stash(
            f'<pre class="markdown-code-block"><code class="language-{m.group(1) or "text"}">'
            f"{escape(m.group(2).strip())}</code></pre>"
        ),
        html,
    )
    html = INLINE_CODE_RE.sub(lambda m: stash(f'<code class="markdown-inline-code">{escape(m.group(1))}</code>'), html)
    html = escape(html)

    for pattern, tag in HEADER_RES:
        html = pattern.sub(rf'<{tag} class="markdown-{tag}">\1</{tag}>', html)
    for pattern in BOLD_RES:
        html = pattern.sub(r'<strong class="markdown-bold">\1</strong>', html)
    for pattern in ITALIC_RES:
        html = pattern.sub(r'<em class="markdown-italic">\1</em>', html)
    html = LINK_RE.sub(_link, html)
    html = HR_RE.sub('<hr class="markdown-hr">', html)
    html = QUOTE_RE.sub(r'<blockquote class="markdown-blockquote">\1</blockquote>', html)
    html = _group_list(html, UL_ITEM_RE, "ul", "\x01")
    html = _group_list(html, OL_ITEM_RE, "ol", "\x02")

    paragraphs = []
    for block in re.split(r"\n\n+", html):
        block = block.strip()
        if not block:
            continue
        stashed = STASH_RE.fullmatch(block)
        if BLOCK_RE.match(block) or (stashed and code[int(stashed.group(1))].startswith("<pre")):
            paragraphs.append(block)
            continue
        block = block.replace("\n", '<br class="markdown-br">')
        paragraphs.append(f'<p class="markdown-paragraph">{block}</p>')

    return STASH_RE.sub(lambda m: code[int(m.group(1))], "\n".join(paragraphs))
