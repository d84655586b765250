from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from clinica.auth_models import Utente
from clinica.etl.sync import esegui_sync

from .deps import solo_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sync", tags=["sync"])


@router.post("/all")
def api_sync_completa(user: Utente = Depends(solo_admin)) -> JSONResponse:
    logger.info("Sincronizzazione richiesta da %s", user.email)
    esito = esegui_sync()
    return JSONResponse(status_code=200 if esito["success"] else 500, content=esito)
