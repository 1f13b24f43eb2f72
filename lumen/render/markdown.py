"""Markdown to HTML."""

import markdown

EXTENSIONS = ["fenced_code", "tables", "toc", "sane_lists"]


def render_markdown(text: str) -> str:
    md = markdown.Markdown(extensions=EXTENSIONS, output_format="html")
    return md.convert(text or "")
