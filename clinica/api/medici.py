from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from clinica.periodi import intervallo_opzionale
from clinica.services.medici import dettaglio_medico, lista_medici, metriche_medici

from .deps import get_current_user, periodo_obbligatorio, valida_uuid

router = APIRouter(prefix="/doctors", tags=["doctors"], dependencies=[Depends(get_current_user)])


@router.get("")
def api_lista_medici(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    specialtyId: str | None = None,
    search: str | None = None,
) -> dict[str, Any]:
    return lista_medici(page, limit, specialty_id=specialtyId, search=search)


@router.get("/metrics/summary")
def api_metriche_medici(
    periodo: tuple[datetime, datetime] = Depends(periodo_obbligatorio),
    search: str | None = None,
) -> dict[str, Any]:
    start, end = periodo
    return {"data": metriche_medici(start, end, search=search)}


@router.get("/{doctor_id}")
def api_dettaglio_medico(
    doctor_id: str,
    startDate: str | None = None,
    endDate: str | None = None,
) -> dict[str, Any]:
    valida_uuid(doctor_id)
    try:
        start, end = intervallo_opzionale(startDate, endDate)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    dati = dettaglio_medico(doctor_id, start, end)
    if dati is None:
        raise HTTPException(status_code=404, detail="Médico não encontrado")
    return {"data": dati}
