from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status

from clinica.auth_models import Utente
from clinica.auth_service import crea_utente
from clinica.services.utenti import aggiorna_utente, dettaglio_utente, elimina_utente, lista_utenti

from .deps import get_current_user
from .schemas import UtenteCreateIn, UtenteUpdateIn

router = APIRouter(prefix="/users", tags=["users"], dependencies=[Depends(get_current_user)])


@router.get("")
def api_lista_utenti() -> dict[str, Any]:
    return {"data": lista_utenti()}


@router.get("/{user_id}")
def api_dettaglio_utente(user_id: str) -> dict[str, Any]:
    dati = dettaglio_utente(user_id)
    if dati is None:
        raise HTTPException(status_code=404, detail="Usuário não encontrado")
    return {"data": dati}


@router.post("", status_code=status.HTTP_201_CREATED)
def api_crea_utente(payload: UtenteCreateIn) -> dict[str, Any]:
    try:
        u = crea_utente(payload.email, payload.name, payload.password, payload.role)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"data": u, "message": "User created successfully"}


@router.put("/{user_id}")
def api_aggiorna_utente(user_id: str, payload: UtenteUpdateIn) -> dict[str, Any]:
    try:
        u = aggiorna_utente(user_id, payload.model_dump(exclude_none=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if u is None:
        raise HTTPException(status_code=404, detail="User not found")
    return {"data": u, "message": "User updated successfully"}


@router.delete("/{user_id}")
def api_elimina_utente(user_id: str, user: Utente = Depends(get_current_user)) -> dict[str, Any]:
    try:
        eliminato = elimina_utente(user_id, richiedente_id=user.id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not eliminato:
        raise HTTPException(status_code=404, detail="User not found")
    return {"message": "User deleted successfully"}
