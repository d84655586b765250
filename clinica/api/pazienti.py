from __future__ import annotations

from datetime import date, datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from clinica.etl.client import S2webError
from clinica.periodi import intervallo_opzionale
from clinica.services.pazienti import (
    compleanni,
    dettaglio_paziente,
    lista_pazienti,
    metriche_pazienti,
    pazienti_inattivi,
)

from .deps import get_current_user, periodo_obbligatorio, valida_uuid

router = APIRouter(prefix="/patients", tags=["patients"], dependencies=[Depends(get_current_user)])


@router.get("")
def api_lista_pazienti(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    search: str | None = None,
) -> dict[str, Any]:
    return lista_pazienti(page, limit, search)


@router.get("/metrics/summary")
def api_metriche_pazienti(
    periodo: tuple[datetime, datetime] = Depends(periodo_obbligatorio),
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1),
    search: str | None = None,
    minSpent: float | None = None,
    maxSpent: float | None = None,
    lastAppointmentStartDate: str | None = None,
    lastAppointmentEndDate: str | None = None,
) -> dict[str, Any]:
    start, end = periodo
    try:
        ultimo_da, ultimo_a = intervallo_opzionale(lastAppointmentStartDate, lastAppointmentEndDate)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "data": metriche_pazienti(
            start, end, page, limit,
            search=search, min_spent=minSpent, max_spent=maxSpent,
            ultimo_da=ultimo_da, ultimo_a=ultimo_a,
        )
    }


@router.get("/inactive")
def api_pazienti_inattivi(
    months: int = 3,
    doctorId: str | None = None,
    procedureId: str | None = None,
) -> dict[str, Any]:
    try:
        return {"data": pazienti_inattivi(months, doctorId, procedureId)}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# dichiarata prima di /{patient_id}
@router.get("/birthdays")
def api_compleanni(date_: date | None = Query(None, alias="date")) -> dict[str, Any]:
    try:
        return {"data": compleanni(date_)}
    except S2webError as e:
        raise HTTPException(status_code=502, detail=str(e))


@router.get("/{patient_id}")
def api_dettaglio_paziente(patient_id: str) -> dict[str, Any]:
    dati = dettaglio_paziente(valida_uuid(patient_id))
    if dati is None:
        raise HTTPException(status_code=404, detail="Paciente não encontrado")
    return {"data": dati}
