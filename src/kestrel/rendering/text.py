# =============================================================================
# Text-Based HTML Rendering
# =============================================================================
# Converts HTML emails to plain terminal text using inscriptis.
#
# inscriptis handles the things email HTML is full of:
#   - Table layouts
#   - Whitespace and line break collapsing
#   - Lists, headings, and other semantic elements
# =============================================================================

import re
from dataclasses import dataclass

from inscriptis import get_text
from inscriptis.css_profiles import CSS_PROFILES
from inscriptis.model.config import ParserConfig


@dataclass
class TextRenderOptions:
    """
    Options for text rendering.

    Attributes:
        display_links: Show link targets after the link text.
        display_images: Show [image] placeholders with alt text.
    """
    display_links: bool = True
    display_images: bool = True


class TextRenderer:
    """
    Renders HTML to plain text using inscriptis.

    Usage:
        >>> renderer = TextRenderer()
        >>> text = renderer.render("<p>Hello <b>world</b></p>")
    """

    def __init__(self, options: TextRenderOptions | None = None) -> None:
        self.options = options or TextRenderOptions()

        self._config = ParserConfig(
            css=CSS_PROFILES["strict"],  # Better whitespace handling
            display_links=self.options.display_links,
            display_images=self.options.display_images,
            display_anchors=False,
        )

    def render(self, html_content: str) -> str:
        """
        Convert HTML to text.

        Args:
            html_content: HTML content to render.

        Returns:
            The text rendering, or "" for empty input.
        """
        if not html_content or not html_content.strip():
            return ""

        html_content = self._preclean_html(html_content)
        text = get_text(html_content, self._config)
        return self._clean_output(text)

    def _preclean_html(self, html: str) -> str:
        """Remove content inscriptis would otherwise render as text."""
        # IE / MSO conditional comments
        html = re.sub(r'<!--\[if[^\]]*\]>.*?<!\[endif\]-->', '', html, flags=re.DOTALL | re.IGNORECASE)
        html = re.sub(r'<!\[if[^\]]*\]>.*?<!\[endif\]>', '', html, flags=re.DOTALL | re.IGNORECASE)

        html = re.sub(r'<style[^>]*>.*?</style>', '', html, flags=re.DOTALL | re.IGNORECASE)
        html = re.sub(r'<script[^>]*>.*?</script>', '', html, flags=re.DOTALL | re.IGNORECASE)

        # XML/Office namespace tags
        html = re.sub(r'<\?xml[^>]*\?>', '', html, flags=re.IGNORECASE)
        html = re.sub(r'<o:[^>]*>.*?</o:[^>]*>', '', html, flags=re.DOTALL)

        return html

    def _clean_output(self, text: str) -> str:
        # Zero-width characters
        text = re.sub(r'[\u200b\u200c\u200d\u2060\ufeff]+', '', text)

        # At most one blank line in a row
        text = re.sub(r'\n{3,}', '\n\n', text)

        lines = [line.rstrip() for line in text.split('\n')]
        return '\n'.join(lines).strip()


_default_renderer: TextRenderer | None = None


def render_html(html_content: str) -> str:
    """Render HTML with a shared default TextRenderer."""
    global _default_renderer
    if _default_renderer is None:
        _default_renderer = TextRenderer()
    return _default_renderer.render(html_content)
