from __future__ import annotations

import uuid
from datetime import datetime

from fastapi import Depends, HTTPException, Query, status
from fastapi.security import OAuth2PasswordBearer

from clinica.auth_models import RuoloUtente, Utente
from clinica.auth_security import get_subject
from clinica.auth_service import get_utente_by_id
from clinica.periodi import intervallo

# OAuth2 Bearer (Authorization: Bearer <token>)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


def get_subject_corrente(token: str = Depends(oauth2_scheme)) -> str:
    # protezione extra: elimina spazi / virgolette accidentali
    token = token.strip().strip('"').strip("'")

    user_id = get_subject(token)
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token inválido")
    return user_id


def get_current_user(user_id: str = Depends(get_subject_corrente)) -> Utente:
    u = get_utente_by_id(user_id)
    if not u or not u.attivo:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Usuário inválido")
    return u


def solo_admin(user: Utente = Depends(get_current_user)) -> Utente:
    if user.ruolo != RuoloUtente.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden. Only administrators have access to this resource.",
        )
    return user


def valida_uuid(valore: str) -> str:
    try:
        uuid.UUID(valore)
    except ValueError:
        raise HTTPException(status_code=400, detail="ID inválido") from None
    return valore


def periodo_obbligatorio(
    startDate: str | None = Query(None),
    endDate: str | None = Query(None),
) -> tuple[datetime, datetime]:
    try:
        return intervallo(startDate, endDate)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
