"""Start/stop wiring for the funnel engine and the session it runs under."""

from enum import Enum
from typing import Callable, Iterable, Optional

from funnelbot.config import settings
from funnelbot.database import SessionLocal
from funnelbot.logging_config import get_logger
from funnelbot.services.catalog_service import CatalogStore
from funnelbot.services.contact_state_service import ContactStateStore
from funnelbot.services.dispatcher import ContentDispatcher
from funnelbot.services.funnel_engine import EngineSession, FunnelEngine
from funnelbot.services.media_service import MediaFetcher
from funnelbot.services.permission_service import PermissionSet
from funnelbot.services.result import Result
from funnelbot.services.transport import GatewayTransport

logger = get_logger("engine_controller")


class EngineStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    STOPPING = "stopping"


def build_default_engine(session: EngineSession) -> FunnelEngine:
    transport = GatewayTransport(settings.gateway_url, settings.gateway_token, timeout=settings.gateway_timeout_seconds)
    media = MediaFetcher(
        settings.media_base_url,
        head_timeout=settings.media_head_timeout_seconds,
        fetch_timeout=settings.media_fetch_timeout_seconds,
    )
    dispatcher = ContentDispatcher(transport, media, delay_seconds=settings.send_delay_seconds)
    return FunnelEngine(
        CatalogStore(SessionLocal),
        ContactStateStore(SessionLocal),
        dispatcher,
        session,
        config=settings,
    )


class EngineController:
    def __init__(self, engine_factory: Callable[[EngineSession], FunnelEngine] = build_default_engine):
        self._engine_factory = engine_factory
        self._permissions = PermissionSet.from_values(settings.default_role, settings.default_permissions)
        self._engine: Optional[FunnelEngine] = None
        self._status = EngineStatus.DISCONNECTED

    @property
    def engine(self) -> Optional[FunnelEngine]:
        return self._engine

    @property
    def status(self) -> EngineStatus:
        return self._status

    @property
    def permissions(self) -> PermissionSet:
        return self._permissions

    def configure(self, role: str, permissions: Iterable[str] | str) -> Result[PermissionSet]:
        """Set the role and domains used by the next start."""
        if self._engine is not None:
            return Result.failure("Stop the engine before changing permissions", "engine_running")
        self._permissions = PermissionSet.from_values(role, permissions)
        logger.info(
            "Engine configured",
            extra={"context": {"role": self._permissions.role, "permissions": self._permissions.as_list()}},
        )
        return Result.success(self._permissions)

    def start(self) -> Result[EngineSession]:
        if self._engine is not None:
            if self._status == EngineStatus.STOPPING:
                return Result.failure("Engine is stopping", "engine_stopping")
            return Result.failure("Engine already running", "engine_running")

        session = EngineSession(permissions=self._permissions)
        self._engine = self._engine_factory(session)
        self._status = EngineStatus.CONNECTED
        logger.info(
            "Engine started",
            extra={"context": {"role": session.permissions.role, "permissions": session.permissions.as_list()}},
        )
        return Result.success(session)

    async def stop(self) -> bool:
        engine = self._engine
        if engine is None:
            return False
        self._status = EngineStatus.STOPPING
        try:
            await engine.stop()
        finally:
            self._engine = None
            self._status = EngineStatus.DISCONNECTED
        logger.info("Engine stopped")
        return True

    def describe(self) -> dict:
        engine = self._engine
        session = engine.session if engine else None
        return {
            "status": self._status.value,
            "role": self._permissions.role,
            "permissions": self._permissions.as_list(),
            "started_at": session.started_at if session else None,
            "last_activity_at": session.last_activity_at if session else None,
            "in_flight": engine.in_flight if engine else 0,
        }


_controller: Optional[EngineController] = None


def get_controller() -> EngineController:
    global _controller
    if _controller is None:
        _controller = EngineController()
    return _controller
