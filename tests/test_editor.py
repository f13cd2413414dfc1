from __future__ import annotations

import pytest

from memories.editor import (
    apply_formatting_action,
    apply_formatting_change,
    apply_preset_media_size,
    clean_text_content,
    normalize_block,
    normalize_display_settings,
    normalize_formatting,
    reset_media_size,
    toggle_formatting,
)


def test_normalize_formatting_keeps_known_fields():
    formatting, errors = normalize_formatting(
        {"color": " #123456 ", "fontWeight": "bold", "unknown": "x", "fontSize": ""},
        "paragraph",
    )
    assert errors == []
    assert formatting == {"color": "#123456", "fontWeight": "bold"}


def test_normalize_formatting_reports_bad_enum_values():
    formatting, errors = normalize_formatting({"textAlign": "justify"}, "title")
    assert formatting == {}
    assert errors == ["Formatting textAlign must be one of: center, left, right."]


def test_normalize_formatting_scopes_fields_by_block_type():
    formatting, _ = normalize_formatting({"imageWidth": "50%", "color": "#000"}, "image")
    assert formatting == {"imageWidth": "50%"}
    formatting, _ = normalize_formatting({"imageWidth": "50%", "color": "#000"}, "quote")
    assert formatting == {"color": "#000"}


def test_normalize_formatting_rejects_non_objects():
    assert normalize_formatting(["bold"]) == ({}, ["Formatting must be an object."])
    assert normalize_formatting(None) == ({}, [])


def test_normalize_display_settings():
    settings, errors = normalize_display_settings(
        {"imageSize": "80%", "titleFontSize": "4rem", "quoteFontSize": "expression(alert(1))"}
    )
    assert settings == {"imageSize": "80%", "titleFontSize": "4rem"}
    assert errors == ["Display setting quoteFontSize has an unsupported value."]


def test_normalize_block_cleans_text_and_lowercases_type():
    payload, errors = normalize_block(
        {"block_type": " Title ", "content": "<em>Tom</em> &amp; Jerry", "formatting": None}
    )
    assert errors == []
    assert payload == {"block_type": "title", "content": "Tom & Jerry", "formatting": {}}


@pytest.mark.parametrize(
    "url, message",
    [
        ("", "Media blocks need a URL."),
        ("my photo.jpg", "Media URL cannot contain spaces."),
        ("data:image/png;base64,xyz", "Media URL must be an http(s) link or a site path."),
    ],
)
def test_normalize_block_validates_media_urls(url, message):
    _, errors = normalize_block({"block_type": "media", "content": url})
    assert errors == [message]


def test_normalize_block_partial_uses_existing_type():
    payload, errors = normalize_block(
        {"content": " https://cdn.example.com/v.mov "}, partial=True, existing_type="image"
    )
    assert errors == []
    assert payload == {"content": "https://cdn.example.com/v.mov"}


def test_normalize_block_rejects_bad_shapes():
    assert normalize_block("title") == ({}, ["Block must be an object."])
    _, errors = normalize_block({"block_type": "title", "content": 42})
    assert errors == ["Block content must be text."]


def test_toggles_flip_between_on_and_neutral():
    formatting = toggle_formatting({}, "fontWeight")
    assert formatting == {"fontWeight": "bold"}
    assert toggle_formatting(formatting, "fontWeight") == {"fontWeight": "normal"}
    assert toggle_formatting({}, "textDecoration") == {"textDecoration": "underline"}
    with pytest.raises(ValueError):
        toggle_formatting({}, "color")


def test_formatting_changes_merge_and_clear():
    updated = apply_formatting_change({"color": "#000", "fontSize": "2rem"}, {"color": "", "direction": "rtl"})
    assert updated == {"fontSize": "2rem", "direction": "rtl"}


def test_media_size_presets_and_reset():
    sized = apply_preset_media_size({"color": "#000"}, "400px")
    assert sized == {"color": "#000", "imageWidth": "400px", "imageHeight": "auto"}
    assert reset_media_size(sized) == {"color": "#000"}
    with pytest.raises(ValueError):
        apply_preset_media_size({}, "401px")


def test_clean_text_content_strips_markup():
    assert clean_text_content("  <p>Hello <b>there</b></p>  ") == "Hello there"


@pytest.mark.parametrize(
    "action, options, expected",
    [
        ("toggle", {"field": "fontWeight"}, {"color": "#000", "fontWeight": "bold"}),
        ("change", {"changes": {"color": ""}}, {}),
        ("preset", {"size": "50%"}, {"color": "#000", "imageWidth": "50%", "imageHeight": "auto"}),
        ("reset", {}, {"color": "#000"}),
    ],
)
def test_apply_formatting_action_dispatches(action, options, expected):
    assert apply_formatting_action({"color": "#000"}, action, options) == expected


@pytest.mark.parametrize(
    "action, options",
    [("change", {"changes": "color"}), ("spin", {}), ("toggle", {}), ("preset", {"size": "huge"})],
)
def test_apply_formatting_action_rejects_bad_requests(action, options):
    with pytest.raises(ValueError):
        apply_formatting_action({}, action, options)
