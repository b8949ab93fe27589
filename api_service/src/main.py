"""
FastAPI backend for the meeting lifecycle service.

Endpoints:
    GET    /health                                              — Health check
    POST   /api/meetings                                        — Create meeting (+ attendees)
    GET    /api/meetings/{id}                                   — Mount meeting view (aggregate, permissions, save state)
    PATCH  /api/meetings/{id}                                   — Update details / schedule / type
    DELETE /api/meetings/{id}                                   — Delete (not scheduled only)
    PUT    /api/meetings/{id}/template                          — Replace agenda template
    GET    /api/meetings/{id}/permissions                       — Current PermissionSet
    GET    /api/meetings/{id}/transitions/{target}              — Confirmation copy for a status change
    POST   /api/meetings/{id}/status                            — Commit a status change
    PUT    /api/meetings/{id}/notes/sections/{i}/questions      — Question response
    PUT    /api/meetings/{id}/notes/sections/{i}/talking-points — Talking point notes
    POST   /api/meetings/{id}/notes/sections/{i}/notes          — Add general note
    DELETE /api/meetings/{id}/notes/sections/{i}/notes/{note}   — Remove general note
    PUT    /api/meetings/{id}/notes/fields/{field}              — Free-text notes field
    POST   /api/meetings/{id}/notes/save                        — Save Now
    GET    /api/meetings/{id}/notes/export                      — JSON export download
    POST   /api/meetings/{id}/attendees                         — Add attendee
    PATCH  /api/meetings/{id}/attendees/{person_id}             — Role / attendance
    DELETE /api/meetings/{id}/attendees/{person_id}             — Remove attendee
    DELETE /api/meetings/{id}/session                           — Unmount view (final flush)
"""

from typing import Any, Dict, Type, TypeVar

from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
import uvicorn

from domain.models import AttendeeDraft, MeetingDraft
from shared_utils.config_loader import get_settings
from shared_utils.logging_utils import ContextualLogger, configure_logging
from shared_utils.constants import LogScope, APIEndpoints
from shared_utils.error_handler import AppException, ValidationError, handle_error
from shared_utils.validation import InputValidator
from shared_utils.di_container import get_di_container


# ---------------------------------------------------------------------------
# Application bootstrap
# ---------------------------------------------------------------------------

settings = get_settings()
configure_logging(settings.environment, settings.log_level)
logger = ContextualLogger(scope=LogScope.API)

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description=settings.app_description,
)

limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

logger.info("api_initialized", environment=settings.environment, store_backend=settings.store_backend)


@app.on_event("shutdown")
def _flush_open_workspaces() -> None:
    get_di_container().get_workspace_registry().close_all(flush=True)
    logger.info("api_shutdown_flushed")


M = TypeVar("M", bound=BaseModel)


def _parse_body(model: Type[M], body: Dict[str, Any]) -> M:
    try:
        return model.model_validate(body)
    except PydanticValidationError as exc:
        raise ValidationError(
            "Invalid request body",
            context={"errors": exc.errors(include_url=False, include_context=False, include_input=False)},
        ) from exc


def _require_text(body: Dict[str, Any], key: str) -> str:
    value = body.get(key)
    if not isinstance(value, str):
        raise ValidationError(f"{key} is required", context={"field": key})
    return value


def _app_error(e: AppException, event: str) -> JSONResponse:
    logger.warning(event, error_code=e.error_code)
    return JSONResponse(status_code=e.http_status, content=e.to_dict())


def _unexpected_error(e: Exception) -> JSONResponse:
    error_response = handle_error(e, scope=LogScope.API)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_response,
    )


def _mutation_response(result) -> JSONResponse:
    code = status.HTTP_200_OK if result.success else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=code, content=result.model_dump(mode="json"))


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

@app.get(APIEndpoints.HEALTH)
def health_check() -> dict:
    """Health check endpoint."""
    logger.debug("health_check_requested")
    return {
        "status": "healthy",
        "environment": settings.environment,
        "store_backend": settings.store_backend,
    }


# ======================================================================
# Meetings
# ======================================================================

@app.post(APIEndpoints.MEETINGS)
@limiter.limit("30/minute")
async def create_meeting(request: Request, body: dict) -> JSONResponse:
    """Create a meeting in ``not_scheduled`` together with its attendees.

    Returns 201 even when the attendee rows failed; ``attendees_saved`` and
    ``warning`` say so.
    """
    try:
        draft = _parse_body(MeetingDraft, body)
        report = get_di_container().get_meeting_service().create_meeting(draft)
        content = report.model_dump(mode="json")
        content["complete"] = report.complete
        return JSONResponse(status_code=status.HTTP_201_CREATED, content=content)
    except AppException as e:
        return _app_error(e, "create_meeting_error")
    except Exception as e:
        return _unexpected_error(e)


@app.get(APIEndpoints.MEETING)
async def get_meeting(meeting_id: int) -> JSONResponse:
    """Mount the meeting view and return it."""
    try:
        workspace = get_di_container().get_workspace_registry().open(meeting_id)
        return JSONResponse(content=workspace.view().model_dump(mode="json"))
    except AppException as e:
        return _app_error(e, "get_meeting_error")
    except Exception as e:
        return _unexpected_error(e)


@app.patch(APIEndpoints.MEETING)
@limiter.limit("60/minute")
async def update_meeting_details(request: Request, meeting_id: int, body: dict) -> JSONResponse:
    try:
        container = get_di_container()
        meeting = container.get_meeting_service().update_details(meeting_id, body)
        workspace = container.get_workspace_registry().get(meeting_id)
        if workspace is not None:
            workspace.apply_details({key: getattr(meeting, key) for key in body})
        return JSONResponse(content=meeting.model_dump(mode="json"))
    except AppException as e:
        return _app_error(e, "update_meeting_details_error")
    except Exception as e:
        return _unexpected_error(e)


@app.delete(APIEndpoints.MEETING)
@limiter.limit("30/minute")
async def delete_meeting(request: Request, meeting_id: int) -> JSONResponse:
    try:
        container = get_di_container()
        container.get_meeting_service().delete_meeting(meeting_id)
        container.get_workspace_registry().close(meeting_id, flush=False)
        return JSONResponse(content={"meeting_id": meeting_id, "deleted": True})
    except AppException as e:
        return _app_error(e, "delete_meeting_error")
    except Exception as e:
        return _unexpected_error(e)


@app.put(APIEndpoints.TEMPLATE)
@limiter.limit("60/minute")
async def update_template(request: Request, meeting_id: int, body: dict) -> JSONResponse:
    """Replace the agenda template. Body is the template document itself."""
    try:
        container = get_di_container()
        report = container.get_meeting_service().update_template(meeting_id, body)
        workspace = container.get_workspace_registry().get(meeting_id)
        if workspace is not None:
            workspace.attach_template(report.template)
        return JSONResponse(content=report.model_dump(mode="json"))
    except AppException as e:
        return _app_error(e, "update_template_error")
    except Exception as e:
        return _unexpected_error(e)


@app.get(APIEndpoints.PERMISSIONS)
async def get_permissions(meeting_id: int) -> JSONResponse:
    try:
        workspace = get_di_container().get_workspace_registry().open(meeting_id)
        return JSONResponse(content=workspace.permissions.model_dump(mode="json"))
    except AppException as e:
        return _app_error(e, "get_permissions_error")
    except Exception as e:
        return _unexpected_error(e)


# ======================================================================
# Status transitions
# ======================================================================

@app.get(APIEndpoints.TRANSITION)
async def request_transition(meeting_id: int, target: str) -> JSONResponse:
    """Validate a status change and return its confirmation copy."""
    try:
        workspace = get_di_container().get_workspace_registry().open(meeting_id)
        prompt = workspace.request_transition(target)
        return JSONResponse(content=prompt.model_dump(mode="json"))
    except AppException as e:
        return _app_error(e, "request_transition_error")
    except Exception as e:
        return _unexpected_error(e)


@app.post(APIEndpoints.STATUS)
@limiter.limit("30/minute")
async def commit_transition(request: Request, meeting_id: int, body: dict) -> JSONResponse:
    """Commit a confirmed status change. Body: {"status": "<target>"}."""
    try:
        target = _require_text(body, "status")
        workspace = get_di_container().get_workspace_registry().open(meeting_id)
        result = workspace.commit_transition(target)
        return _mutation_response(result)
    except AppException as e:
        return _app_error(e, "commit_transition_error")
    except Exception as e:
        return _unexpected_error(e)


# ======================================================================
# Notes
# ======================================================================

@app.put(APIEndpoints.QUESTION_RESPONSE)
@limiter.limit("300/minute")
async def upsert_question_response(request: Request, meeting_id: int, section_index: int, body: dict) -> JSONResponse:
    """Body: {"question_text", "response", "debounce"?}."""
    try:
        notes = get_di_container().get_workspace_registry().open(meeting_id).notes
        entry = notes.upsert_question_response(
            section_index,
            _require_text(body, "question_text"),
            _require_text(body, "response"),
            debounce=bool(body.get("debounce", False)),
        )
        if entry is None:
            return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content={"pending": True})
        return JSONResponse(content=entry.model_dump(mode="json"))
    except AppException as e:
        return _app_error(e, "upsert_question_response_error")
    except Exception as e:
        return _unexpected_error(e)


@app.put(APIEndpoints.TALKING_POINT_NOTES)
@limiter.limit("300/minute")
async def upsert_talking_point_notes(request: Request, meeting_id: int, section_index: int, body: dict) -> JSONResponse:
    """Body: {"point_text", "notes", "debounce"?}."""
    try:
        notes = get_di_container().get_workspace_registry().open(meeting_id).notes
        entry = notes.upsert_talking_point_notes(
            section_index,
            _require_text(body, "point_text"),
            _require_text(body, "notes"),
            debounce=bool(body.get("debounce", False)),
        )
        if entry is None:
            return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content={"pending": True})
        return JSONResponse(content=entry.model_dump(mode="json"))
    except AppException as e:
        return _app_error(e, "upsert_talking_point_notes_error")
    except Exception as e:
        return _unexpected_error(e)


@app.post(APIEndpoints.SECTION_NOTES)
@limiter.limit("120/minute")
async def add_general_note(request: Request, meeting_id: int, section_index: int, body: dict) -> JSONResponse:
    """Body: {"content"}."""
    try:
        notes = get_di_container().get_workspace_registry().open(meeting_id).notes
        note = notes.add_general_note(section_index, _require_text(body, "content"))
        return JSONResponse(status_code=status.HTTP_201_CREATED, content=note.model_dump(mode="json"))
    except AppException as e:
        return _app_error(e, "add_general_note_error")
    except Exception as e:
        return _unexpected_error(e)


@app.delete(APIEndpoints.SECTION_NOTE)
@limiter.limit("120/minute")
async def remove_general_note(request: Request, meeting_id: int, section_index: int, note_id: int) -> JSONResponse:
    try:
        notes = get_di_container().get_workspace_registry().open(meeting_id).notes
        removed = notes.remove_general_note(section_index, note_id)
        return JSONResponse(content={"note_id": note_id, "removed": removed})
    except AppException as e:
        return _app_error(e, "remove_general_note_error")
    except Exception as e:
        return _unexpected_error(e)


@app.put(APIEndpoints.NOTES_FIELD)
@limiter.limit("300/minute")
async def set_notes_field(request: Request, meeting_id: int, field: str, body: dict) -> JSONResponse:
    """Body: {"value", "debounce"?}."""
    try:
        notes = get_di_container().get_workspace_registry().open(meeting_id).notes
        debounce = bool(body.get("debounce", False))
        notes.set_text_field(field, _require_text(body, "value"), debounce=debounce)
        code = status.HTTP_202_ACCEPTED if debounce else status.HTTP_200_OK
        return JSONResponse(status_code=code, content={"field": field, "pending": debounce})
    except AppException as e:
        return _app_error(e, "set_notes_field_error")
    except Exception as e:
        return _unexpected_error(e)


@app.post(APIEndpoints.NOTES_SAVE)
@limiter.limit("60/minute")
async def save_notes_now(request: Request, meeting_id: int) -> JSONResponse:
    """Save Now. 503 when the write failed; the notes stay dirty."""
    try:
        notes = get_di_container().get_workspace_registry().open(meeting_id).notes
        state = notes.save_now()
        code = status.HTTP_503_SERVICE_UNAVAILABLE if state.last_error else status.HTTP_200_OK
        return JSONResponse(status_code=code, content=state.model_dump(mode="json"))
    except AppException as e:
        return _app_error(e, "save_notes_now_error")
    except Exception as e:
        return _unexpected_error(e)


@app.get(APIEndpoints.NOTES_EXPORT)
async def export_notes(meeting_id: int) -> Response:
    """Download the notes snapshot as a JSON file."""
    try:
        notes = get_di_container().get_workspace_registry().open(meeting_id).notes
        export = notes.export()
        filename = InputValidator.sanitize_filename(export.export_filename())
        return Response(
            content=export.to_json(),
            media_type="application/json",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )
    except AppException as e:
        return _app_error(e, "export_notes_error")
    except Exception as e:
        return _unexpected_error(e)


# ======================================================================
# Attendees
# ======================================================================

@app.post(APIEndpoints.ATTENDEES)
@limiter.limit("60/minute")
async def add_attendee(request: Request, meeting_id: int, body: dict) -> JSONResponse:
    """Body: {"person_id", "role_in_meeting"?}."""
    try:
        draft = _parse_body(AttendeeDraft, body)
        container = get_di_container()
        workspace = container.get_workspace_registry().open(meeting_id)
        person = next(
            (p for p in container.get_reference_store().list_people() if p.person_id == draft.person_id),
            None,
        )
        result = workspace.roster.add_attendee(draft.person_id, draft.role_in_meeting, person)
        return _mutation_response(result)
    except AppException as e:
        return _app_error(e, "add_attendee_error")
    except Exception as e:
        return _unexpected_error(e)


@app.patch(APIEndpoints.ATTENDEE)
@limiter.limit("120/minute")
async def update_attendee(request: Request, meeting_id: int, person_id: int, body: dict) -> JSONResponse:
    """Body: {"role_in_meeting"?, "attendance_status"?}."""
    try:
        if "role_in_meeting" not in body and "attendance_status" not in body:
            raise ValidationError("role_in_meeting or attendance_status is required")

        roster = get_di_container().get_workspace_registry().open(meeting_id).roster
        result = roster.update_attendee(
            person_id,
            role=body.get("role_in_meeting"),
            attendance_status=body.get("attendance_status"),
        )
        return _mutation_response(result)
    except AppException as e:
        return _app_error(e, "update_attendee_error")
    except Exception as e:
        return _unexpected_error(e)


@app.delete(APIEndpoints.ATTENDEE)
@limiter.limit("60/minute")
async def remove_attendee(request: Request, meeting_id: int, person_id: int) -> JSONResponse:
    try:
        roster = get_di_container().get_workspace_registry().open(meeting_id).roster
        return _mutation_response(roster.remove_attendee(person_id))
    except AppException as e:
        return _app_error(e, "remove_attendee_error")
    except Exception as e:
        return _unexpected_error(e)


# ======================================================================
# Session
# ======================================================================

@app.delete(APIEndpoints.SESSION)
async def close_session(meeting_id: int) -> JSONResponse:
    """Unmount the meeting view; unsaved notes get one final write."""
    try:
        state = get_di_container().get_workspace_registry().close(meeting_id, flush=True)
        return JSONResponse(content={
            "meeting_id": meeting_id,
            "closed": state is not None,
            "persistence": state.model_dump(mode="json") if state is not None else None,
        })
    except AppException as e:
        return _app_error(e, "close_session_error")
    except Exception as e:
        return _unexpected_error(e)


if __name__ == "__main__":
    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower()
    )
