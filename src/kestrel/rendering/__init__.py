# =============================================================================
# Rendering Module
# =============================================================================
# Turns HTML message bodies into readable terminal text. Used when a message
# has no plain-text part, so `kestrel read` and JSON output always carry a
# usable "text" field.
# =============================================================================

from kestrel.rendering.text import TextRenderer, TextRenderOptions, render_html

__all__ = ["TextRenderer", "TextRenderOptions", "render_html"]
