"""Start/stop/status endpoints for the funnel engine."""

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException

from funnelbot.config import settings
from funnelbot.schemas.engine import (
    ContactStateResponse,
    EngineActionResponse,
    EngineStatusResponse,
    StartRequest,
)
from funnelbot.services.engine_controller import EngineController, get_controller

router = APIRouter(prefix="/engine", tags=["engine"])


def require_admin_token(x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token")) -> None:
    expected = settings.admin_token
    if not expected:
        return
    if not x_admin_token or x_admin_token != expected:
        raise HTTPException(status_code=401, detail="Invalid admin token")


@router.post("/start", response_model=EngineActionResponse, dependencies=[Depends(require_admin_token)])
def start_engine(request: Optional[StartRequest] = None, controller: EngineController = Depends(get_controller)):
    if request is not None and (request.role is not None or request.permissions is not None):
        role = request.role if request.role is not None else controller.permissions.role
        permissions = request.permissions if request.permissions is not None else controller.permissions.as_list()
        configured = controller.configure(role, permissions)
        if not configured.ok:
            return EngineActionResponse(success=False, message=configured.error)

    started = controller.start()
    if not started.ok:
        return EngineActionResponse(success=False, message=started.error)
    return EngineActionResponse(success=True, message="Engine started")


@router.post("/stop", response_model=EngineActionResponse, dependencies=[Depends(require_admin_token)])
async def stop_engine(controller: EngineController = Depends(get_controller)):
    stopped = await controller.stop()
    return EngineActionResponse(success=True, message="Engine stopped" if stopped else "Engine was not running")


@router.get("/status", response_model=EngineStatusResponse)
def engine_status(controller: EngineController = Depends(get_controller)):
    return EngineStatusResponse(**controller.describe())


@router.get("/contacts/{contact_id}", response_model=ContactStateResponse)
async def contact_state(contact_id: str, controller: EngineController = Depends(get_controller)):
    engine = controller.engine
    if engine is None:
        raise HTTPException(status_code=409, detail="Engine not running")

    snapshot = await engine.current_state(contact_id)
    if snapshot is None:
        return ContactStateResponse(contact_id=contact_id, state="none")
    return ContactStateResponse(
        contact_id=contact_id,
        state=snapshot.tag.state.value,
        ref_id=snapshot.tag.ref_id,
        updated_at=snapshot.updated_at,
    )
