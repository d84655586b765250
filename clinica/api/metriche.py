from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends

from clinica.services.dashboard import metriche_dashboard
from clinica.services.finanziario import metriche_finanziarie

from .deps import get_current_user, periodo_obbligatorio

router = APIRouter(tags=["metrics"], dependencies=[Depends(get_current_user)])


@router.get("/dashboard/metrics")
def api_metriche_dashboard(periodo: tuple[datetime, datetime] = Depends(periodo_obbligatorio)) -> dict[str, Any]:
    start, end = periodo
    return {"data": metriche_dashboard(start, end)}


@router.get("/financial/metrics")
def api_metriche_finanziarie(
    periodo: tuple[datetime, datetime] = Depends(periodo_obbligatorio),
    category: str | None = None,
    search: str | None = None,
) -> dict[str, Any]:
    start, end = periodo
    return {"data": metriche_finanziarie(start, end, category=category, search=search)}
