"""Project routes: discovery, health checks and copying rules between files."""

import asyncio
from typing import Optional

from fastapi import APIRouter, Query, Request
from pydantic import BaseModel

from claudefig.api.routes import project_directory
from claudefig.errors import FigError
from claudefig.health import AutoFix, AutoFixKind, apply_auto_fix, build_context, run_checks
from claudefig.models import EditingTarget, PermissionType
from claudefig.rules import copy_rule, move_rule


router = APIRouter()


class AutoFixRequest(BaseModel):
    project_path: str
    kind: AutoFixKind
    pattern: Optional[str] = None


class CopyRuleRequest(BaseModel):
    rule: str
    type: PermissionType
    destination: EditingTarget
    project_path: Optional[str] = None
    # Set to move instead of copy
    source: Optional[EditingTarget] = None


@router.get("/projects")
async def list_projects(
    request: Request,
    scan: bool = False,
    directories: Optional[list[str]] = Query(default=None),
):
    discovery = request.app.state.ctx.discovery
    projects = await asyncio.to_thread(discovery.discover, scan, directories)
    return [p.to_dict() for p in projects]


@router.get("/projects/info")
async def project_info(project_path: str, request: Request):
    discovery = request.app.state.ctx.discovery
    project = await asyncio.to_thread(discovery.refresh, project_path)
    return project.to_dict()


@router.get("/projects/health")
async def project_health(project_path: str, request: Request):
    project = project_directory(project_path)
    context = await asyncio.to_thread(build_context, request.app.state.ctx.store, project)
    findings = run_checks(context)
    return {"project_path": str(project), "findings": [f.to_dict() for f in findings]}


@router.post("/projects/health/fix")
async def project_health_fix(body: AutoFixRequest, request: Request):
    ctx = request.app.state.ctx
    project = project_directory(body.project_path)
    fix = AutoFix(body.kind, body.pattern)
    try:
        applied = await asyncio.to_thread(apply_auto_fix, ctx.store, project, fix)
    except FigError as e:
        await ctx.notifier.show_error("Auto-fix Failed", e.message)
        raise
    if applied:
        await ctx.notifier.show_success("Auto-fix Applied", fix.label)
    return {"applied": applied, "fix": fix.to_dict()}


@router.post("/rules/copy")
async def copy_permission_rule(body: CopyRuleRequest, request: Request):
    ctx = request.app.state.ctx
    project = project_directory(body.project_path) if body.project_path else None
    try:
        if body.source is None:
            changed = await asyncio.to_thread(
                copy_rule, ctx.store, body.rule, body.type, body.destination, project
            )
        else:
            changed = await asyncio.to_thread(
                move_rule, ctx.store, body.rule, body.type, body.source, body.destination, project
            )
    except FigError as e:
        await ctx.notifier.show_exception(e)
        raise
    if changed:
        verb = "Copied" if body.source is None else "Moved"
        await ctx.notifier.show_success(f"Rule {verb}", f"{body.rule} to {body.destination.display_name}")
    return {"changed": bool(changed), "found": changed is not None}
