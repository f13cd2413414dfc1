"""Turn stored memory blocks into HTML nodes.

Every block is rendered in two steps:

1. :func:`resolve_block_style` layers the built-in defaults for the block
   type, the block's own ``formatting`` and the page ``display_settings``
   into one style mapping. Page settings win over block formatting, which
   wins over the defaults. Media blocks are the exception: an explicit
   ``imageWidth``/``imageHeight`` on the block beats the page-wide
   ``imageSize``.
2. :func:`render_block` dispatches on the block type (and, for media, on the
   kind inferred from the URL extension) and returns a :class:`VisualNode`,
   or ``None`` for block types it does not know.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union
from urllib.parse import urlsplit

from markupsafe import Markup, escape

TEXT_BLOCK_TYPES = ("title", "paragraph", "quote", "highlight")
MEDIA_BLOCK_TYPES = ("image", "media")
BLOCK_TYPES = TEXT_BLOCK_TYPES + MEDIA_BLOCK_TYPES

TEXT_FORMATTING_FIELDS = (
    "fontFamily",
    "fontSize",
    "color",
    "backgroundColor",
    "fontWeight",
    "fontStyle",
    "textAlign",
    "textDecoration",
    "direction",
)
MEDIA_FORMATTING_FIELDS = ("imageWidth", "imageHeight")
FORMATTING_FIELDS = TEXT_FORMATTING_FIELDS + MEDIA_FORMATTING_FIELDS

FORMATTING_CHOICES: Dict[str, frozenset] = {
    "fontWeight": frozenset({"normal", "bold"}),
    "fontStyle": frozenset({"normal", "italic"}),
    "textAlign": frozenset({"left", "center", "right"}),
    "textDecoration": frozenset({"none", "underline"}),
    "direction": frozenset({"ltr", "rtl"}),
}

DEFAULT_FONT_FAMILY = "Arial, sans-serif"

TYPE_DEFAULT_STYLES: Dict[str, Dict[str, str]] = {
    "title": {
        "fontFamily": DEFAULT_FONT_FAMILY,
        "fontSize": "3rem",
        "fontWeight": "bold",
        "color": "#1f2937",
    },
    "paragraph": {
        "fontFamily": DEFAULT_FONT_FAMILY,
        "fontSize": "1.25rem",
        "color": "#374151",
        "lineHeight": "1.75",
    },
    "quote": {
        "fontFamily": DEFAULT_FONT_FAMILY,
        "fontSize": "1.5rem",
        "fontStyle": "italic",
        "textAlign": "center",
        "color": "#4b5563",
    },
    "highlight": {
        "fontFamily": DEFAULT_FONT_FAMILY,
        "backgroundColor": "rgba(252, 165, 165, 0.3)",
        "color": "#be185d",
        "padding": "1rem",
        "borderRadius": "0.5rem",
    },
    "image": {},
    "media": {},
}

# Display-settings key that overrides the font size of each text block type.
SETTINGS_FONT_SIZE_KEYS = {
    "title": "titleFontSize",
    "paragraph": "paragraphFontSize",
    "quote": "quoteFontSize",
    "highlight": "highlightFontSize",
}
SETTINGS_MEDIA_SIZE_KEY = "imageSize"
DISPLAY_SETTINGS_KEYS = tuple(SETTINGS_FONT_SIZE_KEYS.values()) + (SETTINGS_MEDIA_SIZE_KEY,)

IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "gif", "bmp", "webp", "svg"})
VIDEO_EXTENSIONS = frozenset({"mp4", "avi", "mov", "wmv", "flv", "webm", "mkv"})
AUDIO_EXTENSIONS = frozenset({"mp3", "wav", "ogg", "aac", "flac", "m4a"})

MEDIA_IMAGE = "image"
MEDIA_VIDEO = "video"
MEDIA_AUDIO = "audio"
MEDIA_UNSUPPORTED = "unsupported"

_SAFE_CSS_VALUE = re.compile(r"^[\w\s#%(),.\-/]+$")
_CSS_FUNCTION_BLOCKLIST = ("url(", "expression(", "image(", "image-set(")
_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")
_VOID_TAGS = frozenset({"img", "br", "hr", "source"})

AttrValue = Union[str, bool]


@dataclass
class VisualNode:
    """A renderer-agnostic element: tag, attributes, inline style, text and children."""

    tag: str
    attrs: Dict[str, AttrValue] = field(default_factory=dict)
    style: Dict[str, str] = field(default_factory=dict)
    text: Optional[str] = None
    children: List["VisualNode"] = field(default_factory=list)

    def to_html(self) -> Markup:
        parts = [f"<{self.tag}"]
        for name, value in self.attrs.items():
            if value is True:
                parts.append(f" {name}")
            elif value is False or value is None:
                continue
            else:
                parts.append(f' {name}="{escape(value)}"')
        if self.style:
            parts.append(f' style="{escape(css_declarations(self.style))}"')
        parts.append(">")
        if self.tag in _VOID_TAGS:
            return Markup("".join(parts))
        if self.text is not None:
            parts.append(str(escape(self.text)))
        for child in self.children:
            parts.append(str(child.to_html()))
        parts.append(f"</{self.tag}>")
        return Markup("".join(parts))


def css_property_name(name: str) -> str:
    """``backgroundColor`` -> ``background-color``."""
    return _CAMEL_BOUNDARY.sub("-", name).lower()


def css_declarations(style: Mapping[str, str]) -> str:
    return "; ".join(f"{css_property_name(name)}: {value}" for name, value in style.items())


def clean_style_value(name: str, value: Any) -> Optional[str]:
    """Return a usable CSS value for a formatting/settings field, or None to inherit."""
    if value is None or isinstance(value, bool):
        return None
    if not isinstance(value, (str, int, float)):
        return None
    text = str(value).strip()
    if not text:
        return None
    choices = FORMATTING_CHOICES.get(name)
    if choices is not None:
        return text if text in choices else None
    if not _SAFE_CSS_VALUE.match(text):
        return None
    lowered = text.lower()
    if any(token in lowered for token in _CSS_FUNCTION_BLOCKLIST):
        return None
    return text


def infer_media_kind(url: Optional[str]) -> str:
    """Classify a media URL as image/video/audio/unsupported by its file extension."""
    if not url:
        return MEDIA_UNSUPPORTED
    path = urlsplit(url.strip()).path
    filename = path.rsplit("/", 1)[-1]
    if "." not in filename:
        return MEDIA_UNSUPPORTED
    extension = filename.rsplit(".", 1)[-1].lower()
    if extension in IMAGE_EXTENSIONS:
        return MEDIA_IMAGE
    if extension in VIDEO_EXTENSIONS:
        return MEDIA_VIDEO
    if extension in AUDIO_EXTENSIONS:
        return MEDIA_AUDIO
    return MEDIA_UNSUPPORTED


def resolve_block_style(
    block_type: Optional[str],
    formatting: Optional[Mapping[str, Any]],
    settings: Optional[Mapping[str, Any]],
) -> Dict[str, str]:
    """Layer type defaults, block formatting and page settings into the final style."""
    defaults = TYPE_DEFAULT_STYLES.get(block_type or "")
    if defaults is None:
        return {}
    formatting = formatting or {}
    settings = settings or {}
    style = dict(defaults)

    if block_type in MEDIA_BLOCK_TYPES:
        page_size = clean_style_value(SETTINGS_MEDIA_SIZE_KEY, settings.get(SETTINGS_MEDIA_SIZE_KEY))
        if page_size:
            style["width"] = page_size
        width = clean_style_value("imageWidth", formatting.get("imageWidth"))
        if width:
            style["width"] = width
        height = clean_style_value("imageHeight", formatting.get("imageHeight"))
        if height:
            style["height"] = height
        return style

    for name in TEXT_FORMATTING_FIELDS:
        value = clean_style_value(name, formatting.get(name))
        if value:
            style[name] = value

    settings_key = SETTINGS_FONT_SIZE_KEYS[block_type]
    page_font_size = clean_style_value(settings_key, settings.get(settings_key))
    if page_font_size:
        style["fontSize"] = page_font_size
    return style


def render_block(block: Any, settings: Optional[Mapping[str, Any]] = None) -> Optional[VisualNode]:
    """Render one block (mapping or object) to a node; unknown block types yield None."""
    block_type = _block_field(block, "block_type")
    if block_type not in BLOCK_TYPES:
        return None

    content = _block_field(block, "content") or ""
    formatting = _block_field(block, "formatting")
    if not isinstance(formatting, Mapping):
        formatting = {}
    style = resolve_block_style(block_type, formatting, settings)

    if block_type == "title":
        return VisualNode("h1", {"class": "memory-block memory-title"}, style, content)
    if block_type == "paragraph":
        return VisualNode("p", {"class": "memory-block memory-paragraph"}, style, content)
    if block_type == "quote":
        return VisualNode("blockquote", {"class": "memory-block memory-quote"}, style, content)
    if block_type == "highlight":
        return VisualNode("div", {"class": "memory-block memory-highlight"}, style, content)
    return _render_media(content, style)


def render_blocks(blocks: Iterable[Any], settings: Optional[Mapping[str, Any]] = None) -> Markup:
    """Render a page worth of blocks, silently skipping unknown types."""
    nodes = (render_block(block, settings) for block in blocks)
    return Markup("\n").join(node.to_html() for node in nodes if node is not None)


def _render_media(url: str, style: Dict[str, str]) -> VisualNode:
    kind = infer_media_kind(url)
    if kind == MEDIA_IMAGE:
        return VisualNode(
            "img",
            {"src": url, "alt": "Memory", "class": "memory-block memory-media memory-image"},
            style,
        )
    if kind == MEDIA_VIDEO:
        return VisualNode(
            "video",
            {"src": url, "controls": True, "class": "memory-block memory-media memory-video"},
            style,
            "Your browser does not support the video tag.",
        )
    if kind == MEDIA_AUDIO:
        # Sizing never applies to audio; the control keeps a fixed width.
        player = VisualNode(
            "audio",
            {"src": url, "controls": True, "class": "memory-audio-player"},
            {"width": "100%"},
            "Your browser does not support the audio tag.",
        )
        return VisualNode(
            "div",
            {"class": "memory-block memory-media memory-audio"},
            {"maxWidth": "28rem", "margin": "1rem auto"},
            children=[player],
        )
    return VisualNode(
        "div",
        {"class": "memory-block memory-media memory-unsupported"},
        children=[
            VisualNode("p", {"class": "memory-unsupported-label"}, text="Unsupported media type"),
            VisualNode("p", {"class": "memory-unsupported-url"}, text=url),
        ],
    )


def _block_field(block: Any, name: str) -> Any:
    if isinstance(block, Mapping):
        return block.get(name)
    return getattr(block, name, None)
