from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from clinica.services.specialita import dettaglio_specialita, lista_specialita

from .deps import get_current_user, valida_uuid

router = APIRouter(prefix="/specialties", tags=["specialties"], dependencies=[Depends(get_current_user)])


@router.get("")
def api_lista_specialita(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    search: str | None = None,
) -> dict[str, Any]:
    return lista_specialita(page, limit, search)


@router.get("/{specialty_id}")
def api_dettaglio_specialita(specialty_id: str) -> dict[str, Any]:
    dati = dettaglio_specialita(valida_uuid(specialty_id))
    if dati is None:
        raise HTTPException(status_code=404, detail="Especialidade não encontrada")
    return {"data": dati}
