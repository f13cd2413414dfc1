"""Validation and formatting helpers behind the admin block editor."""

from __future__ import annotations

import html
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import urlsplit

import bleach

from memories.rendering import (
    BLOCK_TYPES,
    DISPLAY_SETTINGS_KEYS,
    FORMATTING_CHOICES,
    MEDIA_BLOCK_TYPES,
    MEDIA_FORMATTING_FIELDS,
    TEXT_FORMATTING_FIELDS,
    clean_style_value,
)

FONT_FAMILIES = [
    ("Arial", "Arial, sans-serif"),
    ("Georgia", "Georgia, serif"),
    ("Times New Roman", "Times New Roman, serif"),
    ("Helvetica", "Helvetica, sans-serif"),
    ("Verdana", "Verdana, sans-serif"),
    ("Dancing Script", "Dancing Script, cursive"),
    ("Playfair Display", "Playfair Display, serif"),
    ("Roboto", "Roboto, sans-serif"),
    ("Open Sans", "Open Sans, sans-serif"),
]

POPULAR_COLORS = [
    "#000000", "#FFFFFF", "#FF0000", "#00FF00", "#0000FF", "#FFFF00", "#FF00FF", "#00FFFF",
    "#FFA500", "#800080", "#008000", "#FFC0CB", "#A52A2A", "#FFD700", "#8B4513", "#2F4F4F",
    "#DC143C", "#00CED1", "#FF69B4", "#32CD32", "#BA55D3", "#F0E68C", "#FF6347", "#4169E1",
]

# The empty entry is the "no background" swatch.
POPULAR_BACKGROUND_COLORS = [
    "", "#F3F4F6", "#FEF3C7", "#DBEAFE", "#F3E8FF", "#FCE7F3", "#D1FAE5", "#FED7D7",
    "#E0F2FE", "#F0F9FF", "#ECFDF5", "#FEF7CD", "#FECACA", "#FEF2E7", "#E0E7FF", "#F0FDF4",
]

PRESET_MEDIA_SIZES = [
    ("25%", "25%"),
    ("50%", "50%"),
    ("75%", "75%"),
    ("100%", "100%"),
    ("Small (200px)", "200px"),
    ("Medium (400px)", "400px"),
    ("Large (600px)", "600px"),
    ("X-Large (800px)", "800px"),
]

# Toggle buttons flip between an "on" value and the neutral value.
FORMATTING_TOGGLES = {
    "fontWeight": ("bold", "normal"),
    "fontStyle": ("italic", "normal"),
    "textDecoration": ("underline", "none"),
}

ALLOWED_MEDIA_SCHEMES = {"", "http", "https"}

FORMATTING_ACTIONS = ("toggle", "change", "preset", "reset")


def normalize_formatting(
    raw: Any,
    block_type: Optional[str] = None,
) -> Tuple[Dict[str, str], List[str]]:
    """Keep recognised formatting fields with valid values; report the rest as errors."""
    if raw is None or raw == "":
        return {}, []
    if not isinstance(raw, Mapping):
        return {}, ["Formatting must be an object."]

    if block_type in MEDIA_BLOCK_TYPES:
        allowed = MEDIA_FORMATTING_FIELDS
    elif block_type is None:
        allowed = TEXT_FORMATTING_FIELDS + MEDIA_FORMATTING_FIELDS
    else:
        allowed = TEXT_FORMATTING_FIELDS
    return _normalize_style_mapping(raw, allowed, "Formatting")


def normalize_display_settings(raw: Any) -> Tuple[Dict[str, str], List[str]]:
    if raw is None or raw == "":
        return {}, []
    if not isinstance(raw, Mapping):
        return {}, ["Display settings must be an object."]
    return _normalize_style_mapping(raw, DISPLAY_SETTINGS_KEYS, "Display setting")


def normalize_block(
    raw: Any,
    partial: bool = False,
    existing_type: Optional[str] = None,
) -> Tuple[Dict[str, Any], List[str]]:
    """Validate an editor block payload.

    With ``partial`` only the keys present are checked, and ``existing_type``
    stands in for a missing ``block_type`` when deciding how to treat content
    and formatting.
    """
    if not isinstance(raw, Mapping):
        return {}, ["Block must be an object."]

    errors: List[str] = []
    payload: Dict[str, Any] = {}

    block_type = existing_type
    if "block_type" in raw or not partial:
        block_type = str(raw.get("block_type") or "").strip().lower()
        if block_type not in BLOCK_TYPES:
            errors.append(f"Block type must be one of: {', '.join(BLOCK_TYPES)}.")
        else:
            payload["block_type"] = block_type

    if "content" in raw or not partial:
        content = raw.get("content")
        if content is None:
            content = ""
        if not isinstance(content, str):
            errors.append("Block content must be text.")
        elif block_type in MEDIA_BLOCK_TYPES:
            url, url_error = _normalize_media_url(content)
            if url_error:
                errors.append(url_error)
            else:
                payload["content"] = url
        else:
            payload["content"] = clean_text_content(content)

    if "formatting" in raw or not partial:
        formatting, formatting_errors = normalize_formatting(raw.get("formatting"), block_type)
        errors.extend(formatting_errors)
        payload["formatting"] = formatting

    return payload, errors


def clean_text_content(value: str) -> str:
    """Strip markup from editor text; the renderer escapes on output."""
    cleaned = bleach.clean(value, tags=[], attributes={}, strip=True)
    return html.unescape(cleaned).strip()


def toggle_formatting(formatting: Mapping[str, Any], field_name: str) -> Dict[str, Any]:
    if field_name not in FORMATTING_TOGGLES:
        raise ValueError(f"{field_name} cannot be toggled.")
    on_value, off_value = FORMATTING_TOGGLES[field_name]
    updated = dict(formatting)
    updated[field_name] = off_value if formatting.get(field_name) == on_value else on_value
    return updated


def apply_formatting_change(
    formatting: Mapping[str, Any],
    changes: Mapping[str, Any],
) -> Dict[str, Any]:
    """Merge ``changes`` over ``formatting``; empty values clear the field."""
    updated = dict(formatting)
    for key, value in changes.items():
        if value is None or value == "":
            updated.pop(key, None)
        else:
            updated[key] = value
    return updated


def apply_preset_media_size(formatting: Mapping[str, Any], size: str) -> Dict[str, Any]:
    if size not in {value for _, value in PRESET_MEDIA_SIZES}:
        raise ValueError(f"Unknown preset size: {size!r}.")
    return apply_formatting_change(formatting, {"imageWidth": size, "imageHeight": "auto"})


def reset_media_size(formatting: Mapping[str, Any]) -> Dict[str, Any]:
    return apply_formatting_change(formatting, {"imageWidth": None, "imageHeight": None})


def apply_formatting_action(
    formatting: Mapping[str, Any],
    action: str,
    options: Mapping[str, Any],
) -> Dict[str, Any]:
    """Run one toolbar action against a block's formatting.

    ``toggle`` takes ``field``, ``change`` takes a ``changes`` mapping and
    ``preset`` takes a ``size``; ``reset`` clears the media size.
    """
    if action == "toggle":
        return toggle_formatting(formatting, str(options.get("field") or ""))
    if action == "change":
        changes = options.get("changes")
        if not isinstance(changes, Mapping):
            raise ValueError("changes must be an object.")
        return apply_formatting_change(formatting, changes)
    if action == "preset":
        return apply_preset_media_size(formatting, str(options.get("size") or ""))
    if action == "reset":
        return reset_media_size(formatting)
    raise ValueError(f"Action must be one of: {', '.join(FORMATTING_ACTIONS)}.")


def _normalize_style_mapping(
    raw: Mapping[str, Any],
    allowed: Tuple[str, ...],
    label: str,
) -> Tuple[Dict[str, str], List[str]]:
    cleaned: Dict[str, str] = {}
    errors: List[str] = []
    for key in allowed:
        value = raw.get(key)
        if value is None or (isinstance(value, str) and not value.strip()):
            continue
        choices = FORMATTING_CHOICES.get(key)
        normalized = clean_style_value(key, value)
        if normalized is None:
            if choices:
                errors.append(f"{label} {key} must be one of: {', '.join(sorted(choices))}.")
            else:
                errors.append(f"{label} {key} has an unsupported value.")
            continue
        cleaned[key] = normalized
    return cleaned, errors


def _normalize_media_url(value: str) -> Tuple[str, Optional[str]]:
    url = value.strip()
    if not url:
        return "", "Media blocks need a URL."
    if any(char.isspace() for char in url):
        return "", "Media URL cannot contain spaces."
    if urlsplit(url).scheme.lower() not in ALLOWED_MEDIA_SCHEMES:
        return "", "Media URL must be an http(s) link or a site path."
    return url, None
