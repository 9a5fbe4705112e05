from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from salesops.api.envelope import Envelope, ok
from salesops.core.auth import AuthUser, get_current_user
from salesops.core.config import get_settings
from salesops.core.rbac import ActorUser, get_current_actor
from salesops.insights.api import router as insights_router
from salesops.metrics import generate_metrics_payload, metrics_content_type
from salesops.sales.api import router as sales_router
from salesops.team.api import router as team_router
from salesops.team.models import ROLE_ADMIN
from salesops.workflow.api import router as workflow_router

router = APIRouter()
router.include_router(insights_router)
router.include_router(sales_router)
router.include_router(team_router)
router.include_router(workflow_router)

system_router = APIRouter(prefix="/api")


@system_router.get("/health", tags=["system"])
def health() -> Envelope[Any]:
    settings = get_settings()
    return ok(
        {
            "status": "ok",
            "service": settings.app_name,
            "environment": settings.app_env,
        }
    )


@system_router.get("/me", tags=["auth"])
def me(actor: ActorUser = Depends(get_current_actor)) -> Envelope[Any]:
    return ok({"user_id": str(actor.user_id), "role": actor.role})


@system_router.get("/metrics", tags=["system"])
def metrics(user: AuthUser = Depends(get_current_user)) -> Response:
    settings = get_settings()
    if not settings.metrics_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not found")
    if ROLE_ADMIN not in user.roles and "system.metrics.read" not in user.roles:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Missing permission: system.metrics.read")
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())


router.include_router(system_router)
