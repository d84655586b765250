"""
Regola di fatturato degli atendimenti.

Un atendimento "PRÉ-PAGO ATENDIDO" entra nel fatturato solo se la data più
vecchia tra data_appuntamento e data_creazione cade nel periodo; tutti gli
altri entrano sempre (le query li selezionano già con l'OR sulle due date).
"""
from __future__ import annotations

from datetime import datetime
from typing import Iterable, Protocol, TypeVar

from sqlalchemy import and_, or_

from .models import STATO_PRE_PAGATO_ATTESO, Appuntamento


class PerFatturato(Protocol):
    valore_pagato: float | None
    stato: str | None
    data_appuntamento: datetime
    data_creazione: datetime | None


A = TypeVar("A", bound=PerFatturato)


def includi_nel_fatturato(app: PerFatturato, start: datetime, end: datetime) -> bool:
    if app.stato == STATO_PRE_PAGATO_ATTESO:
        data_piu_vecchia = app.data_appuntamento
        if app.data_creazione is not None and app.data_creazione < app.data_appuntamento:
            data_piu_vecchia = app.data_creazione
        return start <= data_piu_vecchia <= end
    return True


def filtra_per_fatturato(appuntamenti: Iterable[A], start: datetime, end: datetime) -> list[A]:
    return [a for a in appuntamenti if includi_nel_fatturato(a, start, end)]


def calcola_fatturato_totale(appuntamenti: Iterable[PerFatturato], start: datetime, end: datetime) -> float:
    return sum(float(a.valore_pagato or 0) for a in appuntamenti if includi_nel_fatturato(a, start, end))


def criterio_periodo_fatturato(start: datetime, end: datetime):
    """Filtro SQL: data_appuntamento OPPURE data_creazione nel periodo."""
    return or_(
        and_(Appuntamento.data_appuntamento >= start, Appuntamento.data_appuntamento <= end),
        and_(Appuntamento.data_creazione >= start, Appuntamento.data_creazione <= end),
    )
