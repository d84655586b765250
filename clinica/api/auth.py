from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm

from clinica.auth_security import token_per_utente
from clinica.auth_service import autentica, get_utente_by_id, utente_flat

from .deps import get_subject_corrente
from .schemas import TokenOut

router = APIRouter(tags=["auth"])


@router.post("/auth/login", response_model=TokenOut)
def login(form: OAuth2PasswordRequestForm = Depends()) -> TokenOut:
    u = autentica(form.username.strip().lower(), form.password)
    if not u:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Credenciais inválidas")

    return TokenOut(access_token=token_per_utente(u))


@router.get("/me")
def me(user_id: str = Depends(get_subject_corrente)) -> dict[str, Any]:
    u = get_utente_by_id(user_id)
    if u is None:
        raise HTTPException(status_code=404, detail="User not found")
    return {"data": utente_flat(u)}
