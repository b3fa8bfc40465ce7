"""
REST API Routes for AMP Tracker.

All responses use the response envelope from ``src.api.schemas``.

Endpoints (all under /api/v1 prefix):
- /health - Health check
- /days/{date} - Hydrated day view
- /days/{date}/checklists/... - Checklist item completion and notes
- /days/{date}/time-blocks/... - Time-block toggling and notes
- /time-blocks/{block_id}/override - Per-user block label, time and visibility
- /days/{date}/todos - To-do items
- /days/{date}/wake-time - Wake time for the day
- /time-blocks/assign - Pure time-block assignment
- /templates/{role} - Active template of a role (activation is admin-only)

Admins may act on another user's day with ``?user_id=<id>``.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter as FastAPIRouter
from fastapi import Depends

from src.api.dependencies import (
    get_cache,
    get_current_user_id,
    get_customizer,
    get_hydrator,
    get_recorder,
    get_template_store,
    get_user_context,
    require_admin,
)
from src.api.schemas import (
    AssignTimeBlockRequest,
    BlockNoteRequest,
    BlockOverrideRequest,
    ChecklistNotesRequest,
    CompleteItemRequest,
    CreateTodoRequest,
    WakeTimeRequest,
    success_response,
)
from src.config.settings import get_settings
from src.core.timeblocks import (
    WakeSettings,
    as_utc,
    assign_time_block,
    block_display_name,
    resolve_zone,
)
from src.core.user_context import Role, UserContext
from src.services.block_overrides import BlockCustomizer
from src.services.completion_recorder import CompletionRecorder
from src.services.day_cache import get_cached_day_view, get_day_generation, set_cached_day_view
from src.services.hydration import DayHydrator
from src.services.redis_service import RedisService
from src.services.template_store import TemplateStore

logger = logging.getLogger(__name__)


# =============================================================================
# FastAPI Router with /api/v1 prefix
# =============================================================================

router = FastAPIRouter(prefix="/api/v1")


# =============================================================================
# Health
# =============================================================================


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """
    Health check endpoint (unauthenticated).

    Returns only status, no version or internal details.
    """
    return success_response({"status": "ok"})


# =============================================================================
# Day View
# =============================================================================


@router.get("/days/{day}")
async def get_day(
    day: str,
    ctx: UserContext = Depends(get_user_context),
    hydrator: DayHydrator = Depends(get_hydrator),
    cache: RedisService = Depends(get_cache),
) -> dict[str, Any]:
    """
    Hydrated view of a day: the role's template merged with the day record.

    Served from the day-view cache when possible. The cache generation is
    read before hydrating, so a write that commits meanwhile makes this
    view unreachable instead of stale.
    """
    generation = await get_day_generation(ctx.user_id, day, redis_service=cache)
    cached = await get_cached_day_view(ctx.user_id, day, generation, redis_service=cache)
    if cached is not None:
        return success_response(cached)

    view = (await hydrator.hydrate_day(ctx, day)).to_dict()
    ttl = get_settings().day_cache_ttl
    if ttl > 0:
        await set_cached_day_view(ctx.user_id, day, generation, view, redis_service=cache, ttl=ttl)
    return success_response(view)


@router.put("/days/{day}/wake-time")
async def update_wake_time(
    day: str,
    data: WakeTimeRequest,
    ctx: UserContext = Depends(get_user_context),
    recorder: CompletionRecorder = Depends(get_recorder),
) -> dict[str, Any]:
    """Record the wake time for a day."""
    wake_time = await recorder.update_wake_time(ctx, day, data.wake_time)
    return success_response({"date": day, "wake_time": wake_time})


# =============================================================================
# Checklists
# =============================================================================


@router.post("/days/{day}/checklists/{checklist_id}/items/{item_id}")
async def complete_checklist_item(
    day: str,
    checklist_id: str,
    item_id: str,
    data: CompleteItemRequest,
    ctx: UserContext = Depends(get_user_context),
    recorder: CompletionRecorder = Depends(get_recorder),
) -> dict[str, Any]:
    """
    Mark a checklist item completed.

    ``recorded`` is False when the item was already completed.
    """
    recorded = await recorder.complete_checklist_item(ctx, checklist_id, item_id, data.text, day)
    return success_response({
        "date": day,
        "checklist_id": checklist_id,
        "item_id": item_id,
        "completed": True,
        "recorded": recorded,
    })


@router.delete("/days/{day}/checklists/{checklist_id}/items/{item_id}")
async def uncomplete_checklist_item(
    day: str,
    checklist_id: str,
    item_id: str,
    ctx: UserContext = Depends(get_user_context),
    recorder: CompletionRecorder = Depends(get_recorder),
) -> dict[str, Any]:
    """Remove a checklist item completion (no-op when absent)."""
    removed = await recorder.uncomplete_checklist_item(ctx, checklist_id, item_id, day)
    return success_response({
        "date": day,
        "checklist_id": checklist_id,
        "item_id": item_id,
        "completed": False,
        "removed": removed,
    })


@router.put("/days/{day}/checklists/{checklist_id}/notes")
async def add_checklist_notes(
    day: str,
    checklist_id: str,
    data: ChecklistNotesRequest,
    ctx: UserContext = Depends(get_user_context),
    recorder: CompletionRecorder = Depends(get_recorder),
) -> dict[str, Any]:
    """Overwrite the notes of a checklist that has completions on the day."""
    await recorder.add_checklist_notes(ctx, checklist_id, data.notes, day)
    return success_response({"date": day, "checklist_id": checklist_id})


# =============================================================================
# Time Blocks
# =============================================================================


@router.post("/days/{day}/time-blocks/{block_id}/toggle")
async def toggle_time_block(
    day: str,
    block_id: str,
    ctx: UserContext = Depends(get_user_context),
    recorder: CompletionRecorder = Depends(get_recorder),
) -> dict[str, Any]:
    """Flip a time block's completion state."""
    complete = await recorder.toggle_time_block(ctx, day, block_id)
    return success_response({"date": day, "block_id": block_id, "complete": complete})


@router.post("/days/{day}/time-blocks/{block_id}/notes")
async def add_block_note(
    day: str,
    block_id: str,
    data: BlockNoteRequest,
    ctx: UserContext = Depends(get_user_context),
    recorder: CompletionRecorder = Depends(get_recorder),
) -> dict[str, Any]:
    """Append a note to a time block. Empty notes are ignored."""
    note = await recorder.add_block_note(ctx, day, block_id, data.note)
    return success_response({
        "date": day,
        "block_id": block_id,
        "stored": note is not None,
        "note": note.to_dict() if note is not None else None,
    })


@router.delete("/days/{day}/time-blocks/{block_id}/notes/{note_id}")
async def delete_block_note(
    day: str,
    block_id: str,
    note_id: int,
    ctx: UserContext = Depends(get_user_context),
    recorder: CompletionRecorder = Depends(get_recorder),
) -> dict[str, Any]:
    """Delete one note of a time block."""
    await recorder.delete_block_note(ctx, day, block_id, note_id)
    return success_response({"date": day, "block_id": block_id, "note_id": note_id, "deleted": True})


@router.put("/time-blocks/{block_id}/override")
async def set_block_override(
    block_id: str,
    data: BlockOverrideRequest,
    ctx: UserContext = Depends(get_user_context),
    customizer: BlockCustomizer = Depends(get_customizer),
) -> dict[str, Any]:
    """Relabel, retime or hide a time block on every day of the user."""
    override = await customizer.set_block_override(
        ctx, block_id, label=data.label, time=data.time, hidden=data.hidden
    )
    return success_response(override.to_dict())


@router.delete("/time-blocks/{block_id}/override")
async def clear_block_override(
    block_id: str,
    ctx: UserContext = Depends(get_user_context),
    customizer: BlockCustomizer = Depends(get_customizer),
) -> dict[str, Any]:
    """Restore the template's label, time and visibility of a time block."""
    await customizer.clear_block_override(ctx, block_id)
    return success_response({"block_id": block_id, "cleared": True})


@router.post("/time-blocks/assign")
async def assign_block(
    data: AssignTimeBlockRequest,
    user_id: int = Depends(get_current_user_id),
) -> dict[str, Any]:
    """
    Assign a completion instant to a time block without storing anything.

    When ``wake_time`` is given without ``wake_date`` it applies to the
    completion's local date.
    """
    wake = None
    if data.wake_time:
        wake_date = data.wake_date
        if wake_date is None:
            zone = resolve_zone(data.timezone)
            wake_date = as_utc(data.completion_instant).astimezone(zone).date().isoformat()
        wake = WakeSettings(date=wake_date, wake_time=data.wake_time)

    record = assign_time_block(data.completion_instant, data.timezone, wake)
    return success_response({
        **record.to_dict(),
        "block_name": block_display_name(record.block_index),
    })


# =============================================================================
# To-do Items
# =============================================================================


@router.post("/days/{day}/todos")
async def add_todo_item(
    day: str,
    data: CreateTodoRequest,
    ctx: UserContext = Depends(get_user_context),
    recorder: CompletionRecorder = Depends(get_recorder),
) -> dict[str, Any]:
    """Append a to-do item to the day."""
    todo = await recorder.add_todo_item(ctx, day, data.text)
    return success_response(todo.to_dict())


@router.post("/days/{day}/todos/{item_id}/toggle")
async def toggle_todo_item(
    day: str,
    item_id: str,
    ctx: UserContext = Depends(get_user_context),
    recorder: CompletionRecorder = Depends(get_recorder),
) -> dict[str, Any]:
    """Flip a to-do item's completed flag."""
    completed = await recorder.toggle_todo_item(ctx, day, item_id)
    return success_response({"date": day, "item_id": item_id, "completed": completed})


# =============================================================================
# Templates
# =============================================================================


@router.get("/templates/{role}")
async def get_template(
    role: Role,
    user_id: int = Depends(get_current_user_id),
    template_store: TemplateStore = Depends(get_template_store),
) -> dict[str, Any]:
    """Active template set of a role."""
    return success_response((await template_store.get_template(role)).to_dict())


@router.get("/templates/{role}/versions")
async def list_template_versions(
    role: Role,
    admin_id: int = Depends(require_admin),
    template_store: TemplateStore = Depends(get_template_store),
) -> dict[str, Any]:
    """All stored versions of a role's template, newest first (admin only)."""
    versions = await template_store.list_template_versions(role)
    return success_response({
        "versions": [
            {
                "template_id": template.template_id,
                "version": template.version,
                "name": template.name,
                "is_active": template.is_active,
            }
            for template in versions
        ],
        "total": len(versions),
    })


@router.post("/templates/{template_id}/activate")
async def activate_template(
    template_id: int,
    admin_id: int = Depends(require_admin),
    template_store: TemplateStore = Depends(get_template_store),
) -> dict[str, Any]:
    """Make a stored template version the active one for its role (admin only)."""
    template = await template_store.activate_template_set(template_id)
    logger.info("Template %s activated by admin", template_id)
    return success_response(template.to_dict())


# =============================================================================
# Route listing
# =============================================================================


def get_routes() -> dict[str, dict[str, Any]]:
    """
    Get all registered routes as a dictionary.

    Returns:
        Dictionary mapping "METHOD /path" (without the /api/v1 prefix) to
        route info with handler and method.
    """
    routes: dict[str, dict[str, Any]] = {}
    prefix = router.prefix  # "/api/v1"
    valid_methods = {"GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"}
    for route in router.routes:
        # FastAPI APIRoute objects have .methods and .endpoint attributes
        if hasattr(route, "methods") and hasattr(route, "endpoint"):
            full_path = getattr(route, "path", "")
            if full_path.startswith(prefix):
                path = full_path[len(prefix):]
            else:
                path = full_path
            for method in route.methods:
                if method in valid_methods:
                    key = f"{method} {path}"
                    routes[key] = {
                        "handler": route.endpoint,
                        "method": method,
                    }
    return routes


router.get_routes = get_routes  # type: ignore[attr-defined]


__all__ = ["router", "get_routes"]
