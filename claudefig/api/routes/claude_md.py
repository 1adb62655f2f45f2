"""CLAUDE.md routes: list, save, create and reload files in a project's hierarchy."""

import asyncio
from typing import Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel

from claudefig.api.routes import project_directory
from claudefig.claude_md import ClaudeMDHierarchy, ClaudeMDLevel
from claudefig.errors import FigError

router = APIRouter()


class SaveClaudeMDRequest(BaseModel):
    project_path: str
    file_id: str
    content: str


class CreateClaudeMDRequest(BaseModel):
    project_path: str
    level: ClaudeMDLevel
    relative_path: Optional[str] = None


class ReloadClaudeMDRequest(BaseModel):
    project_path: str
    file_id: str


def _hierarchy(request: Request, project_path: str) -> ClaudeMDHierarchy:
    """One hierarchy per project, kept on the app context."""
    ctx = request.app.state.ctx
    project = project_directory(project_path)
    key = str(project.resolve())
    hierarchy = ctx.claude_md.get(key)
    if hierarchy is None:
        hierarchy = ClaudeMDHierarchy(project, ctx.config.home_dir)
        ctx.claude_md[key] = hierarchy
    return hierarchy


async def _ensure_loaded(hierarchy: ClaudeMDHierarchy):
    if not hierarchy.files:
        await asyncio.to_thread(hierarchy.load_files)


@router.get("/claude-md")
async def list_claude_md(project_path: str, request: Request):
    hierarchy = _hierarchy(request, project_path)
    files = await asyncio.to_thread(hierarchy.load_files)
    return [f.to_dict() for f in files]


@router.put("/claude-md")
async def save_claude_md(body: SaveClaudeMDRequest, request: Request):
    hierarchy = _hierarchy(request, body.project_path)
    notifier = request.app.state.ctx.notifier
    await _ensure_loaded(hierarchy)
    try:
        saved = await asyncio.to_thread(hierarchy.save, body.file_id, body.content)
    except FigError as e:
        await notifier.show_exception(e)
        raise
    await notifier.show_success("Saved", "CLAUDE.md saved successfully")
    return saved.to_dict()


@router.post("/claude-md")
async def create_claude_md(body: CreateClaudeMDRequest, request: Request):
    hierarchy = _hierarchy(request, body.project_path)
    created = await asyncio.to_thread(hierarchy.create, body.level, body.relative_path)
    return created.to_dict()


@router.post("/claude-md/reload")
async def reload_claude_md(body: ReloadClaudeMDRequest, request: Request):
    hierarchy = _hierarchy(request, body.project_path)
    await _ensure_loaded(hierarchy)
    reloaded = await asyncio.to_thread(hierarchy.reload, body.file_id)
    return reloaded.to_dict()
