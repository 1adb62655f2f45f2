"""MCP server routes for a project's ``.mcp.json``.

Edits take the ``digest`` the client last saw; ``""`` means the file did
not exist. A stale digest answers 409 and nothing is written.
"""

import asyncio
from typing import Any, Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel

from claudefig.api.routes import project_directory
from claudefig.errors import FigError
from claudefig.mcp import MCPConfigFile
from claudefig.models import MCPServer

router = APIRouter()


class ProjectRequest(BaseModel):
    project_path: str


class ServerRequest(BaseModel):
    project_path: str
    name: str
    config: dict[str, Any]
    expected_digest: Optional[str] = None


class UpdateServerRequest(BaseModel):
    project_path: str
    config: dict[str, Any]
    new_name: Optional[str] = None
    expected_digest: Optional[str] = None


def _mcp_file(request: Request, project_path: str) -> MCPConfigFile:
    """One file object per project so edits to it are serialized."""
    ctx = request.app.state.ctx
    project = project_directory(project_path)
    key = str(project.resolve())
    mcp_file = ctx.mcp_files.get(key)
    if mcp_file is None:
        mcp_file = MCPConfigFile(ctx.store, project)
        ctx.mcp_files[key] = mcp_file
    return mcp_file


async def _edit(request: Request, title: str, call, *args):
    notifier = request.app.state.ctx.notifier
    try:
        document = await asyncio.to_thread(call, *args)
    except FigError as e:
        await notifier.show_exception(e)
        raise
    await notifier.show_success(title, str(document.path))
    return document.to_dict()


@router.get("/mcp")
async def get_mcp_config(project_path: str, request: Request):
    mcp_file = _mcp_file(request, project_path)
    document = await asyncio.to_thread(mcp_file.load)
    return document.to_dict()


@router.post("/mcp/create")
async def create_mcp_config(body: ProjectRequest, request: Request):
    mcp_file = _mcp_file(request, body.project_path)
    return await _edit(request, "File Created", mcp_file.create)


@router.post("/mcp/servers")
async def add_mcp_server(body: ServerRequest, request: Request):
    mcp_file = _mcp_file(request, body.project_path)
    server = MCPServer.model_validate(body.config)
    return await _edit(
        request, "MCP Server Added", mcp_file.add_server, body.name, server, body.expected_digest
    )


@router.put("/mcp/servers/{name}")
async def update_mcp_server(name: str, body: UpdateServerRequest, request: Request):
    mcp_file = _mcp_file(request, body.project_path)
    server = MCPServer.model_validate(body.config)
    return await _edit(
        request,
        "MCP Server Updated",
        mcp_file.update_server,
        name,
        server,
        body.new_name,
        body.expected_digest,
    )


@router.delete("/mcp/servers/{name}")
async def remove_mcp_server(
    name: str, project_path: str, request: Request, expected_digest: Optional[str] = None
):
    mcp_file = _mcp_file(request, project_path)
    return await _edit(
        request, "MCP Server Removed", mcp_file.remove_server, name, expected_digest
    )
