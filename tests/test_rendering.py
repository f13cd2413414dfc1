from __future__ import annotations

import pytest

from memories.rendering import (
    DEFAULT_FONT_FAMILY,
    VisualNode,
    css_property_name,
    infer_media_kind,
    render_block,
    render_blocks,
    resolve_block_style,
)


@pytest.mark.parametrize(
    "url, expected",
    [
        ("photo.jpg", "image"),
        ("https://cdn.example.com/a/b/PHOTO.JPEG", "image"),
        ("/static/uploads/drawing.svg", "image"),
        ("clip.mp4", "video"),
        ("https://cdn.example.com/clip.webm?token=abc#t=10", "video"),
        ("song.m4a", "audio"),
        ("voice.OGG", "audio"),
        ("document.pdf", "unsupported"),
        ("https://example.com/no-extension", "unsupported"),
        ("", "unsupported"),
        (None, "unsupported"),
    ],
)
def test_infer_media_kind(url, expected):
    assert infer_media_kind(url) == expected


def test_title_uses_built_in_defaults():
    assert resolve_block_style("title", {}, {}) == {
        "fontFamily": DEFAULT_FONT_FAMILY,
        "fontSize": "3rem",
        "fontWeight": "bold",
        "color": "#1f2937",
    }


def test_block_formatting_beats_defaults():
    style = resolve_block_style(
        "quote",
        {"fontStyle": "normal", "color": "#ff0000", "textAlign": "right"},
        {},
    )
    assert style["fontStyle"] == "normal"
    assert style["color"] == "#ff0000"
    assert style["textAlign"] == "right"
    assert style["fontSize"] == "1.5rem"


def test_page_settings_beat_block_formatting_for_font_size():
    style = resolve_block_style(
        "paragraph",
        {"fontSize": "2rem"},
        {"paragraphFontSize": "1rem", "titleFontSize": "9rem"},
    )
    assert style["fontSize"] == "1rem"
    assert style["lineHeight"] == "1.75"


def test_settings_for_other_block_types_do_not_leak():
    style = resolve_block_style("highlight", {}, {"titleFontSize": "9rem"})
    assert "fontSize" not in style
    assert style["backgroundColor"] == "rgba(252, 165, 165, 0.3)"
    assert style["padding"] == "1rem"


def test_media_block_size_beats_page_media_size():
    settings = {"imageSize": "50%"}
    assert resolve_block_style("image", {}, settings) == {"width": "50%"}
    assert resolve_block_style("image", {"imageWidth": "200px"}, settings) == {"width": "200px"}
    assert resolve_block_style("media", {"imageHeight": "auto"}, settings) == {
        "width": "50%",
        "height": "auto",
    }


def test_invalid_values_fall_back_to_the_next_level():
    style = resolve_block_style(
        "title",
        {
            "fontWeight": "heavy",
            "color": "red; background: url(javascript:alert(1))",
            "fontFamily": "",
        },
        {"titleFontSize": "url(x)"},
    )
    assert style["fontWeight"] == "bold"
    assert style["color"] == "#1f2937"
    assert style["fontFamily"] == DEFAULT_FONT_FAMILY
    assert style["fontSize"] == "3rem"


def test_unknown_block_type_renders_nothing():
    assert render_block({"block_type": "carousel", "content": "x"}, {}) is None
    assert render_block({"block_type": None, "content": "x"}, {}) is None
    assert resolve_block_style("carousel", {}, {}) == {}


def test_image_block_with_video_url_renders_video():
    node = render_block({"block_type": "image", "content": "clip.mp4"}, {})
    assert node.tag == "video"
    html = node.to_html()
    assert html.startswith('<video src="clip.mp4" controls')
    assert "<img" not in html


def test_image_renders_img_with_resolved_size():
    node = render_block(
        {"block_type": "image", "content": "/u/cat.png", "formatting": {"imageWidth": "400px"}},
        {"imageSize": "75%"},
    )
    assert node.tag == "img"
    assert node.style == {"width": "400px"}
    assert node.to_html().endswith('style="width: 400px">')


def test_audio_ignores_sizing():
    node = render_block(
        {"block_type": "media", "content": "song.mp3", "formatting": {"imageWidth": "800px"}},
        {"imageSize": "100%"},
    )
    assert node.tag == "div"
    player = node.children[0]
    assert player.tag == "audio"
    assert player.style == {"width": "100%"}
    assert "800px" not in node.to_html()


def test_unsupported_media_shows_placeholder():
    node = render_block({"block_type": "media", "content": "notes.pdf"}, {})
    html = node.to_html()
    assert "Unsupported media type" in html
    assert "notes.pdf" in html


def test_text_content_is_escaped():
    node = render_block({"block_type": "paragraph", "content": "<b>hi</b> & bye"}, {})
    html = node.to_html()
    assert "&lt;b&gt;hi&lt;/b&gt; &amp; bye" in html
    assert "<b>" not in html


def test_missing_or_invalid_formatting_renders_defaults():
    node = render_block({"block_type": "title", "content": "Hi", "formatting": "not-a-dict"}, {})
    assert node.style["fontSize"] == "3rem"
    node = render_block({"block_type": "title", "content": "Hi"}, None)
    assert node.tag == "h1"


def test_render_block_accepts_objects():
    class Block:
        block_type = "quote"
        content = "Carpe diem"
        formatting = {}

    node = render_block(Block(), {"quoteFontSize": "2rem"})
    assert node.tag == "blockquote"
    assert node.style["fontSize"] == "2rem"


def test_render_blocks_skips_unknown_types_in_order():
    html = render_blocks(
        [
            {"block_type": "title", "content": "One"},
            {"block_type": "mystery", "content": "??"},
            {"block_type": "paragraph", "content": "Two"},
        ],
        {},
    )
    assert "??" not in html
    assert html.index("One") < html.index("Two")


def test_visual_node_attribute_handling():
    node = VisualNode("audio", {"src": 'a"b.mp3', "controls": True, "muted": False})
    html = node.to_html()
    assert 'src="a&#34;b.mp3"' in html
    assert " controls" in html
    assert "muted" not in html


def test_css_property_name():
    assert css_property_name("backgroundColor") == "background-color"
    assert css_property_name("color") == "color"
