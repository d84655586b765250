from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status

from clinica.services.spese import aggiorna_spesa, crea_spesa, elimina_spesa, lista_spese

from .deps import get_current_user
from .schemas import SpesaCreateIn, SpesaUpdateIn

router = APIRouter(prefix="/expenses", tags=["expenses"], dependencies=[Depends(get_current_user)])


@router.get("")
def api_lista_spese() -> dict[str, Any]:
    return {"data": lista_spese(), "message": "Expenses retrieved successfully"}


@router.post("", status_code=status.HTTP_201_CREATED)
def api_crea_spesa(payload: SpesaCreateIn) -> dict[str, Any]:
    try:
        spesa = crea_spesa(payload.payment, payload.value, payload.date, payload.category, payload.month)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"data": spesa, "message": "Expense created successfully"}


@router.put("/{expense_id}")
def api_aggiorna_spesa(expense_id: str, payload: SpesaUpdateIn) -> dict[str, Any]:
    try:
        spesa = aggiorna_spesa(expense_id, payload.model_dump(exclude_none=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if spesa is None:
        raise HTTPException(status_code=404, detail="Expense not found")
    return {"data": spesa, "message": "Expense updated successfully"}


@router.delete("/{expense_id}")
def api_elimina_spesa(expense_id: str) -> dict[str, Any]:
    if not elimina_spesa(expense_id):
        raise HTTPException(status_code=404, detail="Expense not found")
    return {"message": "Expense deleted successfully"}
