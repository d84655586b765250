"""
Sincronizzazione completa con s2web: esegue gli importatori in ordine di
dipendenza e si ferma al primo che fallisce.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

from .client import S2webClient
from .importatori import (
    EsitoImport,
    importa_appuntamenti,
    importa_appuntamenti_procedure,
    importa_medici,
    importa_medici_specialita,
    importa_pazienti,
    importa_procedure,
    importa_specialita,
)

logger = logging.getLogger(__name__)

Fase = Callable[[S2webClient], EsitoImport]

# l'ordine conta: procedure e atendimenti referenziano le anagrafiche
FASI: list[tuple[str, Fase]] = [
    ("import-specialties", lambda c: importa_specialita(c)),
    ("import-doctors", lambda c: importa_medici(c)),
    ("import-patients", lambda c: importa_pazienti(c)),
    ("import-procedures", lambda c: importa_procedure(c)),
    ("import-doctor-specialties", lambda c: importa_medici_specialita(c)),
    ("import-appointments", lambda c: importa_appuntamenti(c)),
    ("import-appointment-procedures", lambda c: importa_appuntamenti_procedure()),
]


@dataclass
class EsitoFase:
    nome: str
    ok: bool
    durata_ms: int
    errore: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.nome,
            "success": self.ok,
            "duration": formatta_durata(self.durata_ms),
            "durationMs": self.durata_ms,
            "error": self.errore,
        }


def formatta_durata(ms: int) -> str:
    secondi = ms // 1000
    minuti, secondi = divmod(secondi, 60)
    return f"{minuti}m {secondi}s" if minuti > 0 else f"{secondi}s"


def _ms_da(inizio: float) -> int:
    return int((time.monotonic() - inizio) * 1000)


def esegui_sync(client: S2webClient | None = None, fasi: list[tuple[str, Fase]] | None = None) -> dict[str, Any]:
    client = client or S2webClient()
    fasi = FASI if fasi is None else fasi

    logger.info("Sincronizzazione avviata: %d fasi", len(fasi))
    esiti: list[EsitoFase] = []
    inizio_totale = time.monotonic()

    for nome, fase in fasi:
        logger.info("Fase %s avviata", nome)
        inizio = time.monotonic()
        try:
            fase(client)
        except Exception as e:
            logger.exception("Fase %s fallita, sincronizzazione interrotta", nome)
            esiti.append(EsitoFase(nome, False, _ms_da(inizio), str(e) or e.__class__.__name__))
            break
        esito = EsitoFase(nome, True, _ms_da(inizio))
        esiti.append(esito)
        logger.info("Fase %s completata in %s", nome, formatta_durata(esito.durata_ms))

    totale_ms = _ms_da(inizio_totale)
    falliti = sum(1 for e in esiti if not e.ok)
    con_errori = falliti > 0
    if con_errori:
        logger.error("Sincronizzazione conclusa con errori in %s", formatta_durata(totale_ms))
    else:
        logger.info("Sincronizzazione conclusa in %s", formatta_durata(totale_ms))

    return {
        "success": not con_errori,
        "message": "Sincronização concluída com erros" if con_errori else "Sincronização concluída com sucesso",
        "statistics": {
            "totalScripts": len(esiti),
            "successCount": len(esiti) - falliti,
            "failureCount": falliti,
            "totalDuration": formatta_durata(totale_ms),
            "totalDurationMs": totale_ms,
        },
        "scripts": [e.as_dict() for e in esiti],
    }
