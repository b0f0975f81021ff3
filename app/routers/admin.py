"""Admin API: analytics, user data requests, backups and health."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from pydantic import BaseModel

from app.dependencies import Services, get_services
from app.logging_config import get_logger
from app.services.alert_service import send_alert
from app.services.health_service import check_and_heal_sessions, get_system_health

logger = get_logger("admin")

router = APIRouter(prefix="/admin", tags=["admin"])


class AlertTestResponse(BaseModel):
    success: bool
    message: str


class BackupResponse(BaseModel):
    sessions: Optional[str] = None
    orders: Optional[str] = None


def require_admin_token(
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
    services: Services = Depends(get_services),
) -> None:
    expected = services.settings.admin_token
    if not expected:
        raise HTTPException(status_code=500, detail="ADMIN_TOKEN not configured")
    if not x_admin_token or x_admin_token != expected:
        raise HTTPException(status_code=401, detail="Invalid admin token")


# === ANALYTICS ===


@router.get("/stats", dependencies=[Depends(require_admin_token)])
async def get_stats(services: Services = Depends(get_services)):
    return {
        "conversations": services.conversations.stats(),
        "payments": services.payments.stats(),
    }


@router.get("/payments/export", dependencies=[Depends(require_admin_token)])
async def export_payments(
    start: Optional[datetime] = Query(default=None),
    end: Optional[datetime] = Query(default=None),
    services: Services = Depends(get_services),
):
    return {"orders": services.payments.export(start, end)}


# === USER DATA ===


@router.get("/users/{user_id}", dependencies=[Depends(require_admin_token)])
async def export_user(user_id: str, services: Services = Depends(get_services)):
    data = services.conversations.export_user(user_id)
    if data is None:
        raise HTTPException(status_code=404, detail="User not found")
    return data


@router.delete("/users/{user_id}", dependencies=[Depends(require_admin_token)])
async def delete_user(user_id: str, services: Services = Depends(get_services)):
    deleted = await services.conversations.delete_user(user_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="User not found")
    return {"success": True, "user_id": user_id}


# === OPERATIONS ===


@router.post("/backup", response_model=BackupResponse, dependencies=[Depends(require_admin_token)])
async def create_backup(services: Services = Depends(get_services)):
    services.flush()
    sessions_path = services.sessions.backup()
    orders_path = services.orders.backup()
    logger.info("Backup created", extra={"context": {"sessions": sessions_path, "orders": orders_path}})
    return BackupResponse(
        sessions=str(sessions_path) if sessions_path else None,
        orders=str(orders_path) if orders_path else None,
    )


@router.get("/health", dependencies=[Depends(require_admin_token)])
async def system_health(services: Services = Depends(get_services)):
    """Get system health status."""
    return get_system_health(services.conversations)


@router.post("/heal", dependencies=[Depends(require_admin_token)])
async def heal_system(services: Services = Depends(get_services)):
    """Check and heal invariant violations."""
    return await check_and_heal_sessions(services.conversations, services.scheduler.watchdog_window)


@router.post("/alerts/test", response_model=AlertTestResponse, dependencies=[Depends(require_admin_token)])
def alerts_test():
    sent = send_alert("INFO", "Alerts test", {"source": "admin.alerts.test"})
    if sent:
        return AlertTestResponse(success=True, message="Alert sent")
    return AlertTestResponse(success=False, message="Alert not sent (check ALERT_BOT_TOKEN/ALERT_CHAT_ID)")
