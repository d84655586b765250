from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from clinica.api import ROUTERS
from clinica.config import CORS_ORIGINS, LOG_JSON, LOG_LEVEL
from clinica.db import init_db
from clinica.logging_config import setup_logging
from clinica.seed import seed_admin

logger = logging.getLogger(__name__)

MESSAGGIO_GENERICO = "Algo deu errado."

app = FastAPI(title="Clinica Back-office API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=CORS_ORIGINS != ["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

for r in ROUTERS:
    app.include_router(r)



# Startup

@app.on_event("startup")
def startup() -> None:
    # Crea tabelle e admin iniziale (idempotente)
    setup_logging(use_json=LOG_JSON, log_level=LOG_LEVEL)
    init_db()
    seed_admin()
    logger.info("API avviata")



# Gestione errori: sempre {"message": ...}

def _testo_validazione(exc: RequestValidationError) -> str:
    errori = exc.errors()
    if not errori:
        return "Dados inválidos"
    primo = errori[0]
    campo = ".".join(str(p) for p in primo.get("loc", ()) if p not in ("body", "query", "path"))
    return f"{campo}: {primo.get('msg')}" if campo else str(primo.get("msg"))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"message": _testo_validazione(exc)})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Errore non gestito su %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"message": str(exc) or MESSAGGIO_GENERICO})



# Operativo

@app.get("/health")
def health() -> dict[str, Any]:
    return {"status": "ok"}
