from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from clinica.periodi import intervallo_opzionale
from clinica.services.appuntamenti import dettaglio_appuntamento, lista_appuntamenti, metriche_appuntamenti

from .deps import get_current_user, periodo_obbligatorio, valida_uuid

router = APIRouter(prefix="/appointments", tags=["appointments"], dependencies=[Depends(get_current_user)])


@router.get("")
def api_lista_appuntamenti(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    startDate: str | None = None,
    endDate: str | None = None,
    doctorId: str | None = None,
    patientId: str | None = None,
    specialtyId: str | None = None,
    insuranceName: str | None = None,
    paymentDone: bool | None = None,
    search: str | None = None,
) -> dict[str, Any]:
    try:
        start, end = intervallo_opzionale(startDate, endDate)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    risultato = lista_appuntamenti(
        page, limit, start, end,
        search=search, doctor_id=doctorId, patient_id=patientId, specialty_id=specialtyId,
        insurance_name=insuranceName, payment_done=paymentDone,
    )
    return {"data": risultato["data"], "pagination": risultato["pagination"]}


@router.get("/metrics/summary")
def api_metriche_appuntamenti(
    periodo: tuple[datetime, datetime] = Depends(periodo_obbligatorio),
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1),
    search: str | None = None,
    doctorId: str | None = None,
    patientId: str | None = None,
    specialtyId: str | None = None,
    insuranceName: str | None = None,
) -> dict[str, Any]:
    start, end = periodo
    return {
        "data": metriche_appuntamenti(
            start, end, page, limit,
            search=search, doctor_id=doctorId, patient_id=patientId,
            specialty_id=specialtyId, insurance_name=insuranceName,
        )
    }


@router.get("/{appointment_id}")
def api_dettaglio_appuntamento(appointment_id: str) -> dict[str, Any]:
    dati = dettaglio_appuntamento(valida_uuid(appointment_id))
    if dati is None:
        raise HTTPException(status_code=404, detail="Atendimento não encontrado")
    return {"data": dati}
