"""System routes: health, version, notifications, presets and reference data."""

from typing import Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel

from claudefig import __version__
from claudefig.errors import NotFoundError
from claudefig.presets import KNOWN_ENV_VARS, PERMISSION_PRESETS, TOOL_TYPES

router = APIRouter()


# --- Pydantic v2 response models ---

class HealthResponse(BaseModel):
    status: str
    open_editors: int
    ws_clients: int


class VersionResponse(BaseModel):
    current: str


class PresetRule(BaseModel):
    rule: str
    type: str


class PresetResponse(BaseModel):
    id: str
    name: str
    description: str
    rules: list[PresetRule]


class KnownEnvVar(BaseModel):
    key: str
    description: str
    default: Optional[str] = None


@router.get("/health", response_model=HealthResponse)
async def health(request: Request):
    ctx = request.app.state.ctx
    return HealthResponse(
        status="ok",
        open_editors=len(ctx.editors.editors()),
        ws_clients=ctx.ws_registry.client_count,
    )


@router.get("/version", response_model=VersionResponse)
async def version():
    return VersionResponse(current=__version__)


# --- Notifications ---

@router.get("/notifications")
async def list_notifications(request: Request):
    return [t.to_dict() for t in request.app.state.ctx.notifier.toasts]


@router.delete("/notifications/{toast_id}")
async def dismiss_notification(toast_id: str, request: Request):
    if not request.app.state.ctx.notifier.dismiss(toast_id):
        raise NotFoundError(f"No notification with id {toast_id}")
    return {"dismissed": toast_id}


@router.delete("/notifications")
async def dismiss_all_notifications(request: Request):
    request.app.state.ctx.notifier.dismiss_all()
    return {"dismissed": "all"}


# --- Reference data ---

@router.get("/presets", response_model=list[PresetResponse])
async def list_presets():
    return [
        PresetResponse(
            id=preset_id,
            name=preset["name"],
            description=preset["description"],
            rules=[PresetRule(rule=r, type=t.value) for r, t in preset["rules"]],
        )
        for preset_id, preset in PERMISSION_PRESETS.items()
    ]


@router.get("/env-vars/known", response_model=list[KnownEnvVar])
async def list_known_env_vars():
    return [
        KnownEnvVar(key=key, description=meta["description"], default=meta["default"])
        for key, meta in KNOWN_ENV_VARS.items()
    ]


@router.get("/tool-types")
async def list_tool_types():
    return [{"tool": tool, "placeholder": hint} for tool, hint in TOOL_TYPES.items()]
