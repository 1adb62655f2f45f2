"""Settings editor routes: open, edit, undo/redo, save, conflicts.

Every edit answers ``{"changed": bool, "editor": <state>}`` so clients can
re-render from one response.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel

from claudefig.conflict import ConflictResolution
from claudefig.editor import SettingsEditor
from claudefig.merge import load_merged_settings
from claudefig.models import EditingTarget, PermissionType

logger = logging.getLogger(__name__)

router = APIRouter()


# --- Request models ---

class OpenEditorRequest(BaseModel):
    target: EditingTarget
    project_path: Optional[str] = None


class PermissionRuleRequest(BaseModel):
    rule: str
    type: PermissionType


class MoveRuleRequest(BaseModel):
    type: PermissionType
    source: int
    destination: int


class EnvVarRequest(BaseModel):
    key: str
    value: str = ""


class AttributionRequest(BaseModel):
    commits: Optional[bool] = None
    pullRequests: Optional[bool] = None


class ToolRequest(BaseModel):
    tool: str


class ResolveRequest(BaseModel):
    resolution: ConflictResolution


# --- Helpers ---

def _editor(request: Request, editor_id: str) -> SettingsEditor:
    return request.app.state.ctx.editors.get(editor_id)


def _result(editor: SettingsEditor, changed: bool) -> dict:
    return {"changed": changed, "editor": editor.state()}


# --- Lifecycle ---

@router.post("/editors")
async def open_editor(body: OpenEditorRequest, request: Request):
    editor = await request.app.state.ctx.editors.open(body.target, body.project_path)
    return editor.state()


@router.get("/editors")
async def list_editors(request: Request):
    return [e.state() for e in request.app.state.ctx.editors.editors()]


@router.get("/editors/{editor_id}")
async def get_editor(editor_id: str, request: Request):
    return _editor(request, editor_id).state()


@router.get("/editors/{editor_id}/preview")
async def preview_editor(editor_id: str, request: Request):
    return _editor(request, editor_id).preview()


@router.delete("/editors/{editor_id}")
async def close_editor(editor_id: str, request: Request, discard: bool = False):
    editor = _editor(request, editor_id)
    closed = await request.app.state.ctx.editors.release(editor, discard=discard)
    return {"closed": closed, "owners": editor.owners}


@router.post("/editors/{editor_id}/create")
async def create_file(editor_id: str, request: Request):
    editor = _editor(request, editor_id)
    await editor.create_file()
    return editor.state()


@router.post("/editors/{editor_id}/reload")
async def reload_editor(editor_id: str, request: Request):
    editor = _editor(request, editor_id)
    await editor.reload()
    return editor.state()


@router.post("/editors/{editor_id}/save")
async def save_editor(editor_id: str, request: Request):
    editor = _editor(request, editor_id)
    saved = await editor.save()
    return {"saved": saved, "editor": editor.state()}


@router.post("/editors/{editor_id}/check")
async def check_editor(editor_id: str, request: Request):
    editor = _editor(request, editor_id)
    record = await editor.check_external_change()
    return _result(editor, record is not None)


@router.post("/editors/{editor_id}/resolve")
async def resolve_conflict(editor_id: str, body: ResolveRequest, request: Request):
    editor = _editor(request, editor_id)
    await editor.resolve_conflict(body.resolution)
    return editor.state()


# --- History ---

@router.post("/editors/{editor_id}/undo")
async def undo(editor_id: str, request: Request):
    editor = _editor(request, editor_id)
    return _result(editor, editor.undo())


@router.post("/editors/{editor_id}/redo")
async def redo(editor_id: str, request: Request):
    editor = _editor(request, editor_id)
    return _result(editor, editor.redo())


# --- Permission rules ---

@router.post("/editors/{editor_id}/permissions")
async def add_permission_rule(editor_id: str, body: PermissionRuleRequest, request: Request):
    editor = _editor(request, editor_id)
    return _result(editor, editor.add_permission_rule(body.rule, body.type))


@router.put("/editors/{editor_id}/permissions/{index}")
async def update_permission_rule(
    editor_id: str, index: int, body: PermissionRuleRequest, request: Request
):
    editor = _editor(request, editor_id)
    return _result(editor, editor.update_permission_rule(index, body.rule, body.type))


@router.delete("/editors/{editor_id}/permissions/{index}")
async def remove_permission_rule(editor_id: str, index: int, request: Request):
    editor = _editor(request, editor_id)
    return _result(editor, editor.remove_permission_rule(index))


@router.post("/editors/{editor_id}/permissions/move")
async def move_permission_rule(editor_id: str, body: MoveRuleRequest, request: Request):
    editor = _editor(request, editor_id)
    changed = editor.move_permission_rule(body.type, body.source, body.destination)
    return _result(editor, changed)


@router.post("/editors/{editor_id}/presets/{preset_id}")
async def apply_preset(editor_id: str, preset_id: str, request: Request):
    editor = _editor(request, editor_id)
    return _result(editor, editor.apply_preset(preset_id))


# --- Environment ---

@router.post("/editors/{editor_id}/env")
async def add_env_var(editor_id: str, body: EnvVarRequest, request: Request):
    editor = _editor(request, editor_id)
    return _result(editor, editor.add_environment_variable(body.key, body.value))


@router.put("/editors/{editor_id}/env/{key}")
async def update_env_var(editor_id: str, key: str, body: EnvVarRequest, request: Request):
    editor = _editor(request, editor_id)
    changed = editor.update_environment_variable(key, body.key, body.value)
    return _result(editor, changed)


@router.delete("/editors/{editor_id}/env/{key}")
async def remove_env_var(editor_id: str, key: str, request: Request):
    editor = _editor(request, editor_id)
    return _result(editor, editor.remove_environment_variable(key))


# --- Attribution and disallowed tools ---

@router.put("/editors/{editor_id}/attribution")
async def update_attribution(editor_id: str, body: AttributionRequest, request: Request):
    editor = _editor(request, editor_id)
    return _result(editor, editor.update_attribution(body.commits, body.pullRequests))


@router.post("/editors/{editor_id}/disallowed-tools")
async def add_disallowed_tool(editor_id: str, body: ToolRequest, request: Request):
    editor = _editor(request, editor_id)
    return _result(editor, editor.add_disallowed_tool(body.tool))


@router.delete("/editors/{editor_id}/disallowed-tools/{tool}")
async def remove_disallowed_tool(editor_id: str, tool: str, request: Request):
    editor = _editor(request, editor_id)
    return _result(editor, editor.remove_disallowed_tool(tool))


# --- Effective settings ---

@router.get("/effective")
async def effective_settings(project_path: str, request: Request):
    merged = await load_merged_settings(request.app.state.ctx.store, project_path)
    return merged.to_dict()
