from fastapi import APIRouter, Depends, Request

from prodit.database.session import get_db_session
from prodit.platform.db_readiness import (
    REQUIRED_CREDENTIAL_TABLES,
    check_required_tables,
)

router = APIRouter()


@router.get("/api/health")
def health(request: Request):
    settings = request.app.state.settings
    return {
        "ok": True,
        "service": "Prodit v3.0",
        "environment": settings.environment,
        "public_url": settings.public_url,
    }


@router.get("/api/health/readiness")
async def readiness(db=Depends(get_db_session)):
    """Readiness probe that validates the credential tables exist."""
    result = check_required_tables(db, REQUIRED_CREDENTIAL_TABLES)
    return {
        "status": "ready" if result.ready else "not_ready",
        "checks": {
            "database": "ok",
            "credential_tables": {
                "required": result.checked_tables,
                "missing": result.missing_tables,
            },
        },
    }
