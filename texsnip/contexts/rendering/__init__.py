"""
Rendering Context

Responsibilities:
- Wraps snippets into standalone LaTeX documents
- Caches the compiled PDF and bounding box per snippet
- Bridges asynchronous compiles to blocking render calls
- Rasterizes and crops compiled snippets at any zoom

Owns: Snippet source/preamble, loaded documents, ready notifications
Never: Spawns processes directly, touches temporary sources
"""

from texsnip.contexts.rendering.render_cache import RenderCache, blank_image
from texsnip.contexts.rendering.snippet_template import SnippetTemplate

__all__ = ["RenderCache", "SnippetTemplate", "blank_image"]
