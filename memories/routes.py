"""Blueprints for the memories JSON API, the public viewer and the admin editor."""

from __future__ import annotations

import json
from typing import Any, Callable, List, Optional, Tuple

from flask import (
    Blueprint,
    abort,
    current_app,
    flash,
    jsonify,
    redirect,
    render_template,
    request,
    url_for,
)
from sqlalchemy.exc import SQLAlchemyError

from memories.editor import (
    FONT_FAMILIES,
    POPULAR_BACKGROUND_COLORS,
    POPULAR_COLORS,
    PRESET_MEDIA_SIZES,
    apply_formatting_action,
    normalize_block,
    normalize_display_settings,
    normalize_formatting,
)
from memories.preferences import RecentColors
from memories.rendering import BLOCK_TYPES, DISPLAY_SETTINGS_KEYS, render_blocks
from memories.service import (
    MemoryLookupError,
    MemoryLockedError,
    MemoryNotFoundError,
    MemorySaveError,
    add_block,
    calendar_today,
    coerce_date,
    create_memory,
    delete_block,
    delete_memory,
    get_block,
    get_memory,
    get_memory_record,
    list_calendar,
    list_memory_records,
    move_block,
    parse_json_mapping,
    replace_blocks,
    total_days,
    update_block,
    update_memory,
)

UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred"

AdminGuard = Callable[[Callable], Callable]
RecentColorsProvider = Callable[[], RecentColors]


# ====== Public JSON API ======

memories_api_blueprint = Blueprint(
    "memories_api",
    __name__,
    url_prefix="/api/memories",
)


@memories_api_blueprint.get("")
def list_calendar_days():
    try:
        days = list_calendar()
    except Exception:
        current_app.logger.exception("Failed to list calendar days")
        return _json_error(UNEXPECTED_ERROR_MESSAGE, 500)
    return jsonify({"total_days": total_days(), "days": days})


@memories_api_blueprint.get("/<day>")
def get_memory_json(day: str):
    preview = request.args.get("preview") == "true"
    try:
        page = get_memory(_parse_day(day), preview=preview)
    except MemoryLookupError as exc:
        return _json_error(exc.message, exc.status_code)
    except Exception:
        current_app.logger.exception("Failed to load memory for day %s", day)
        return _json_error(UNEXPECTED_ERROR_MESSAGE, 500)
    return jsonify(page.to_dict())


def _json_error(message: str, status_code: int):
    return jsonify({"error": message}), status_code


def _parse_day(raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise MemoryNotFoundError() from None


# ====== Public viewer ======

memories_viewer_blueprint = Blueprint("memories_viewer", __name__)


@memories_viewer_blueprint.get("/")
def view_calendar():
    return render_template(
        "memories/calendar.html",
        days=list_calendar(),
        today=calendar_today(),
    )


@memories_viewer_blueprint.get("/memories/<int:day>")
def view_memory(day: int):
    try:
        page = get_memory(day)
    except MemoryLockedError:
        return render_template("memories/locked.html", day=day), 403
    except MemoryNotFoundError:
        abort(404)
    return render_template(
        "memories/day.html",
        page=page,
        rendered_blocks=render_blocks(page.blocks, page.display_settings),
        back_endpoint="memories_viewer.view_calendar",
    )


# ====== Admin editor ======


def create_memories_admin_blueprint(
    admin_required: AdminGuard,
    recent_colors_provider: RecentColorsProvider,
) -> Blueprint:
    """Factory so the app can inject its admin gate and preference storage."""

    if not callable(recent_colors_provider):
        raise ValueError("recent_colors_provider must be provided for the block editor.")

    bp = Blueprint("admin_memories", __name__, url_prefix="/admin")

    @bp.get("/")
    @admin_required
    def list_memories():
        return render_template(
            "admin/memories_list.html",
            memories=list_memory_records(),
            calendar=list_calendar(),
            total_days=total_days(),
        )

    @bp.route("/memories/new", methods=["GET", "POST"])
    @admin_required
    def create_memory_page():
        form_values = _empty_form_values()
        errors: List[str] = []
        if request.method == "POST":
            form_values = _form_values_from_request()
            payload, errors = _validate_and_normalize(form_values)
            if not errors:
                try:
                    create_memory(
                        payload["day_number"],
                        payload["release_date"],
                        payload["display_settings"],
                        blocks=payload["blocks"],
                    )
                except MemoryLookupError as exc:
                    errors.append(exc.message)
                except MemorySaveError:
                    errors.append("Could not save the memory. Please try again.")
                else:
                    flash(f"Day {payload['day_number']} created.", "success")
                    return redirect(url_for(".edit_memory_page", day=payload["day_number"]))
        return _render_form(form_values, errors, memory=None)

    @bp.route("/memories/<int:day>/edit", methods=["GET", "POST"])
    @admin_required
    def edit_memory_page(day: int):
        memory = _memory_or_404(day)
        form_values = _form_values_from_memory(memory)
        errors: List[str] = []

        if request.method == "POST":
            form_values = _form_values_from_request()
            form_values["day_number"] = str(day)
            payload, errors = _validate_and_normalize(form_values)
            if not errors:
                try:
                    update_memory(
                        day,
                        payload["release_date"],
                        payload["display_settings"],
                        blocks=payload["blocks"],
                    )
                except MemorySaveError:
                    errors.append("Could not save your changes. Please try again.")
                else:
                    flash(f"Day {day} updated.", "success")
                    return redirect(url_for(".edit_memory_page", day=day))

        return _render_form(form_values, errors, memory=memory)

    @bp.post("/memories/<int:day>/delete")
    @admin_required
    def delete_memory_page(day: int):
        try:
            delete_memory(day)
        except MemoryNotFoundError:
            abort(404)
        except MemorySaveError:
            flash(f"Could not delete day {day}.", "error")
            return redirect(url_for(".edit_memory_page", day=day))
        flash(f"Day {day} deleted.", "success")
        return redirect(url_for(".list_memories"))

    @bp.get("/preview/<int:day>")
    @admin_required
    def preview_memory(day: int):
        try:
            page = get_memory(day, preview=True)
        except MemoryNotFoundError:
            abort(404)
        return render_template(
            "memories/day.html",
            page=page,
            rendered_blocks=render_blocks(page.blocks, page.display_settings),
            back_endpoint="admin_memories.list_memories",
            preview=True,
        )

    # ----- Editor JSON API -----

    @bp.route("/api/memories/<int:day>/blocks", methods=["PUT"])
    @admin_required
    def replace_blocks_json(day: int):
        body, error = _json_body()
        if error:
            return error
        raw_blocks = body.get("blocks")
        if not isinstance(raw_blocks, list):
            return _json_validation_error(["blocks must be a list."])
        blocks, errors = _normalize_blocks(raw_blocks)
        if errors:
            return _json_validation_error(errors)
        try:
            saved = replace_blocks(day, blocks)
        except MemoryLookupError as exc:
            return _json_reason(exc.message, exc.status_code)
        except MemorySaveError as exc:
            return _json_reason(str(exc), 500)
        for payload in blocks:
            _remember_colors(payload.get("formatting"))
        return jsonify({"status": "ok", "blocks": [_block_to_dict(block) for block in saved]})

    @bp.route("/api/memories/<int:day>/blocks", methods=["POST"])
    @admin_required
    def add_block_json(day: int):
        body, error = _json_body()
        if error:
            return error
        payload, errors = normalize_block(body)
        if errors:
            return _json_validation_error(errors)
        try:
            block = add_block(day, payload)
        except MemoryLookupError as exc:
            return _json_reason(exc.message, exc.status_code)
        except MemorySaveError as exc:
            return _json_reason(str(exc), 500)
        _remember_colors(payload.get("formatting"))
        return jsonify({"status": "ok", "block": _block_to_dict(block)}), 201

    @bp.route("/api/blocks/<int:block_id>", methods=["PATCH"])
    @admin_required
    def update_block_json(block_id: int):
        body, error = _json_body()
        if error:
            return error
        try:
            existing = get_block(block_id)
            if _changes_block_type(body, existing.block_type):
                # A new type must hold for the stored content and formatting too.
                merged = {
                    "block_type": body.get("block_type"),
                    "content": body.get("content", existing.content),
                    "formatting": body.get(
                        "formatting",
                        parse_json_mapping(existing.formatting, f"formatting for block {block_id}"),
                    ),
                }
                payload, errors = normalize_block(merged)
            else:
                payload, errors = normalize_block(
                    body, partial=True, existing_type=existing.block_type
                )
            if errors:
                return _json_validation_error(errors)
            block = update_block(block_id, payload)
        except MemoryLookupError as exc:
            return _json_reason(exc.message, exc.status_code)
        except MemorySaveError as exc:
            return _json_reason(str(exc), 500)
        _remember_colors(payload.get("formatting"))
        return jsonify({"status": "ok", "block": _block_to_dict(block)})

    @bp.post("/api/blocks/<int:block_id>/formatting")
    @admin_required
    def apply_formatting_json(block_id: int):
        body, error = _json_body()
        if error:
            return error
        try:
            block = get_block(block_id)
            current = parse_json_mapping(block.formatting, f"formatting for block {block_id}")
            try:
                updated = apply_formatting_action(current, str(body.get("action") or ""), body)
            except ValueError as exc:
                return _json_validation_error([str(exc)])
            formatting, errors = normalize_formatting(updated, block.block_type)
            if errors:
                return _json_validation_error(errors)
            block = update_block(block_id, {"formatting": formatting})
        except MemoryLookupError as exc:
            return _json_reason(exc.message, exc.status_code)
        except MemorySaveError as exc:
            return _json_reason(str(exc), 500)
        if body.get("action") == "change":
            _remember_colors({key: formatting[key] for key in body["changes"] if key in formatting})
        return jsonify({"status": "ok", "block": _block_to_dict(block)})

    @bp.route("/api/blocks/<int:block_id>", methods=["DELETE"])
    @admin_required
    def delete_block_json(block_id: int):
        try:
            delete_block(block_id)
        except MemoryLookupError as exc:
            return _json_reason(exc.message, exc.status_code)
        except MemorySaveError as exc:
            return _json_reason(str(exc), 500)
        return jsonify({"status": "ok"})

    @bp.post("/api/blocks/<int:block_id>/move")
    @admin_required
    def move_block_json(block_id: int):
        body, error = _json_body()
        if error:
            return error
        try:
            blocks = move_block(block_id, str(body.get("direction") or ""))
        except ValueError as exc:
            return _json_validation_error([str(exc)])
        except MemoryLookupError as exc:
            return _json_reason(exc.message, exc.status_code)
        except MemorySaveError as exc:
            return _json_reason(str(exc), 500)
        return jsonify({"status": "ok", "blocks": [_block_to_dict(block) for block in blocks]})

    @bp.get("/api/recent-colors/<category>")
    @admin_required
    def get_recent_colors(category: str):
        try:
            colors = recent_colors_provider().get(category)
        except ValueError as exc:
            return _json_reason(str(exc), 400)
        return jsonify({"status": "ok", "category": category, "colors": colors})

    @bp.post("/api/recent-colors/<category>")
    @admin_required
    def add_recent_color(category: str):
        body, error = _json_body()
        if error:
            return error
        try:
            colors = recent_colors_provider().add(category, str(body.get("color") or ""))
        except ValueError as exc:
            return _json_reason(str(exc), 400)
        return jsonify({"status": "ok", "category": category, "colors": colors})

    def _remember_colors(formatting: Optional[dict]) -> None:
        if not formatting:
            return
        try:
            recent_colors_provider().remember_formatting(formatting)
        except SQLAlchemyError as exc:
            current_app.logger.warning("Could not record recent colours: %s", exc)

    def _render_form(form_values: dict, errors: List[str], memory):
        colors = recent_colors_provider()
        return render_template(
            "admin/memory_form.html",
            form_values=form_values,
            errors=errors,
            memory=memory,
            is_edit=memory is not None,
            total_days=total_days(),
            settings_keys=DISPLAY_SETTINGS_KEYS,
            block_types=BLOCK_TYPES,
            font_families=FONT_FAMILIES,
            popular_colors=POPULAR_COLORS,
            popular_background_colors=POPULAR_BACKGROUND_COLORS,
            preset_sizes=PRESET_MEDIA_SIZES,
            recent_text_colors=colors.get("text"),
            recent_background_colors=colors.get("background"),
        )

    return bp


def _memory_or_404(day: int):
    try:
        return get_memory_record(day)
    except MemoryNotFoundError:
        abort(404)


def _empty_form_values() -> dict:
    values = {
        "day_number": "",
        "release_date": "",
        "blocks_json": "[]",
    }
    for key in DISPLAY_SETTINGS_KEYS:
        values[key] = ""
    return values


def _form_values_from_memory(memory) -> dict:
    values = _empty_form_values()
    settings = parse_json_mapping(memory.display_settings, f"display settings for day {memory.day_number}")
    values.update(
        {
            "day_number": str(memory.day_number),
            "release_date": memory.release_date.isoformat() if memory.release_date else "",
            "blocks_json": json.dumps([_block_to_dict(block) for block in memory.blocks], indent=2),
        }
    )
    for key in DISPLAY_SETTINGS_KEYS:
        values[key] = str(settings.get(key) or "")
    return values


def _form_values_from_request() -> dict:
    values = _empty_form_values()
    for key in values:
        values[key] = request.form.get(key, "").strip()
    return values


def _validate_and_normalize(form_values: dict) -> Tuple[dict, List[str]]:
    errors: List[str] = []

    day_number: Optional[int] = None
    raw_day = form_values["day_number"]
    try:
        day_number = int(raw_day)
    except (TypeError, ValueError):
        errors.append("Day number is required.")
    else:
        if not 1 <= day_number <= total_days():
            errors.append(f"Day number must be between 1 and {total_days()}.")

    release_date = None
    if not form_values["release_date"]:
        errors.append("Release date is required.")
    else:
        try:
            release_date = coerce_date(form_values["release_date"])
        except ValueError:
            errors.append("Release date must be a valid ISO date (YYYY-MM-DD).")

    settings, settings_errors = normalize_display_settings(
        {key: form_values[key] for key in DISPLAY_SETTINGS_KEYS}
    )
    errors.extend(settings_errors)

    blocks: List[dict] = []
    try:
        raw_blocks = json.loads(form_values["blocks_json"] or "[]")
    except ValueError:
        errors.append("Blocks must be valid JSON.")
    else:
        if not isinstance(raw_blocks, list):
            errors.append("Blocks must be a JSON list.")
        else:
            blocks, block_errors = _normalize_blocks(raw_blocks)
            errors.extend(block_errors)

    payload = {
        "day_number": day_number,
        "release_date": release_date,
        "display_settings": settings,
        "blocks": blocks,
    }
    return payload, errors


def _normalize_blocks(raw_blocks: List[Any]) -> Tuple[List[dict], List[str]]:
    blocks: List[dict] = []
    errors: List[str] = []
    for position, raw_block in enumerate(raw_blocks, start=1):
        payload, block_errors = normalize_block(raw_block)
        errors.extend(f"Block {position}: {message}" for message in block_errors)
        blocks.append(payload)
    return blocks, errors


def _changes_block_type(body: dict, current_type: Optional[str]) -> bool:
    if "block_type" not in body:
        return False
    requested = str(body.get("block_type") or "").strip().lower()
    return requested != (current_type or "")


def _block_to_dict(block) -> dict:
    return {
        "id": str(block.id),
        "block_type": block.block_type,
        "content": block.content,
        "formatting": parse_json_mapping(block.formatting, f"formatting for block {block.id}"),
        "sort_order": block.sort_order,
    }


def _json_body():
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return None, _json_reason("Request body must be a JSON object.", 400)
    return body, None


def _json_reason(message: str, status_code: int):
    return jsonify({"status": "error", "reason": message}), status_code


def _json_validation_error(errors: List[str]):
    return jsonify({"status": "error", "errors": errors}), 400
