from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.orm import Session

from app.config import get_settings
from app.db import get_db
from app.routers.utils.dependencies import get_gateway

router = APIRouter(
    tags=["system"],
)


class HealthStatus(BaseModel):
    status: str
    app: str
    environment: str
    database: str
    realtime: bool


@router.get("/health", response_model=HealthStatus)
def health(
    gateway=Depends(get_gateway),
    db: Session = Depends(get_db),
) -> HealthStatus:
    """Liveness plus a trivial database round trip."""
    s = get_settings()
    try:
        db.execute(text("SELECT 1"))
        database = "ok"
    except Exception:
        database = "unavailable"
    return HealthStatus(
        status="ok" if database == "ok" else "degraded",
        app=s.app_name,
        environment=s.environment,
        database=database,
        realtime=gateway is not None,
    )
