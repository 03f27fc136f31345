"""HTML output for question text and printable result reports.

Question bodies and report tables are written in Markdown. Inline ``$...$``
math passes through untouched and is typeset by MathJax when the page loads.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from html import escape

from markdown_it import MarkdownIt

from quizpin.constants.about import APP_NAME

_MATHJAX_SCRIPT = "https://cdn.jsdelivr.net/npm/mathjax@3/es5/tex-mml-chtml.js"

_REPORT_CSS = """
      body { font-family: 'Segoe UI', system-ui, sans-serif; margin: 2rem; color: #111827; }
      h1 { font-size: 1.6rem; margin-bottom: 0.5rem; }
      table { border-collapse: collapse; width: 100%; margin-top: 0.5rem; }
      th, td { border: 1px solid #d1d5db; padding: 0.4rem 0.6rem; text-align: left; vertical-align: top; }
      th { background: #f3f4f6; }
      footer { margin-top: 2rem; font-size: 0.8rem; color: #6b7280; }
      @media print { body { margin: 0; } footer { display: none; } }
"""


@dataclass(slots=True)
class MarkdownRenderer:
    """Markdown to HTML with tables enabled and raw HTML escaped."""

    allow_raw_html: bool = False
    _markdown: MarkdownIt = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._markdown = MarkdownIt("commonmark", {"html": self.allow_raw_html}).enable(
            ["table", "strikethrough"]
        )

    def render_question(self, text: str) -> str:
        """HTML fragment for one question body; blank text renders nothing."""
        text = text.strip()
        return self._markdown.render(text) if text else ""

    def render_report(self, markdown_text: str, title: str) -> str:
        """Standalone printable page for a report written in Markdown."""
        body = self._markdown.render(markdown_text)
        return f"""<!doctype html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <title>{escape(title)}</title>
    <style>{_REPORT_CSS}    </style>
    <script>
      window.MathJax = {{ tex: {{ inlineMath: [['$','$']], displayMath: [['$$','$$']] }} }};
    </script>
    <script defer src="{_MATHJAX_SCRIPT}"></script>
  </head>
  <body>
    <main class="report">{body}</main>
    <footer>{escape(APP_NAME)}</footer>
  </body>
</html>"""


# Renders are read-only, so API worker threads share one instance.
renderer = MarkdownRenderer()
