from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from clinica.periodi import intervallo_opzionale
from clinica.services.procedure import (
    combinazioni_procedure,
    dettaglio_procedura,
    lista_procedure,
    metriche_procedure,
)

from .deps import get_current_user, periodo_obbligatorio, valida_uuid

router = APIRouter(prefix="/procedures", tags=["procedures"], dependencies=[Depends(get_current_user)])


@router.get("")
def api_lista_procedure(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    search: str | None = None,
) -> dict[str, Any]:
    return lista_procedure(page, limit, search)


@router.get("/metrics/summary")
def api_metriche_procedure(
    periodo: tuple[datetime, datetime] = Depends(periodo_obbligatorio),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    search: str | None = None,
) -> dict[str, Any]:
    start, end = periodo
    return {"data": metriche_procedure(start, end, page, limit, search)}


@router.get("/combinations")
def api_combinazioni_procedure(
    minOccurrences: int = Query(3, ge=1),
    limit: int = Query(20, ge=1),
) -> dict[str, Any]:
    return {"data": combinazioni_procedure(minOccurrences, limit)}


@router.get("/{procedure_id}")
def api_dettaglio_procedura(
    procedure_id: str,
    startDate: str | None = None,
    endDate: str | None = None,
) -> dict[str, Any]:
    valida_uuid(procedure_id)
    try:
        start, end = intervallo_opzionale(startDate, endDate)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    dati = dettaglio_procedura(procedure_id, start, end)
    if dati is None:
        raise HTTPException(status_code=404, detail="Procedimento não encontrado")
    return {"data": dati}
