from __future__ import annotations

import logging
from typing import Any

from clinica.dao import SpesaDAO
from clinica.db import db_session
from clinica.models import Spesa
from clinica.periodi import inizio_giorno, parse_data

logger = logging.getLogger(__name__)


def spesa_flat(e: Spesa) -> dict[str, Any]:
    return {
        "id": e.id,
        "payment": e.pagamento,
        "value": float(e.valore),
        "date": e.data,
        "category": e.categoria,
        "month": e.mese,
        "createdAt": e.created_at,
        "updatedAt": e.updated_at,
    }


def _valida(payment: str | None, value: float | None, category: str | None) -> None:
    if payment is not None and not payment.strip():
        raise ValueError("Payment type is required")
    if value is not None and value <= 0:
        raise ValueError("Value must be positive")
    if category is not None and not category.strip():
        raise ValueError("Category is required")


def lista_spese() -> dict[str, Any]:
    with db_session() as s:
        spese = SpesaDAO(s).find_many(order_by=Spesa.data.desc())
        return {"expenses": [spesa_flat(e) for e in spese]}


def crea_spesa(payment: str, value: float, date: str, category: str, month: str | None = None) -> dict[str, Any]:
    """La data viene salvata come giorno di calendario (00:00), senza spostamenti di fuso."""
    _valida(payment, value, category)
    giorno = inizio_giorno(parse_data(date, "date"))
    with db_session() as s:
        e = SpesaDAO(s).create_one(
            pagamento=payment.strip(), valore=value, data=giorno, categoria=category.strip(), mese=month
        )
        logger.info("Spesa creata: %s %s %.2f", e.categoria, e.pagamento, e.valore)
        return spesa_flat(e)


def aggiorna_spesa(spesa_id: str, dati: dict[str, Any]) -> dict[str, Any] | None:
    """Aggiornamento parziale: solo le chiavi presenti (e non None) vengono modificate."""
    _valida(dati.get("payment"), dati.get("value"), dati.get("category"))
    if dati.get("month") is not None and not dati["month"].strip():
        raise ValueError("Month is required")

    modifiche: dict[str, Any] = {}
    if dati.get("payment") is not None:
        modifiche["pagamento"] = dati["payment"]
    if dati.get("value") is not None:
        modifiche["valore"] = dati["value"]
    if dati.get("month") is not None:
        modifiche["mese"] = dati["month"]
    if dati.get("date") is not None:
        modifiche["data"] = inizio_giorno(parse_data(dati["date"], "date"))
    if dati.get("category") is not None:
        modifiche["categoria"] = dati["category"]

    with db_session() as s:
        e = SpesaDAO(s).update_one(spesa_id, modifiche)
        return spesa_flat(e) if e is not None else None


def elimina_spesa(spesa_id: str) -> bool:
    with db_session() as s:
        return SpesaDAO(s).delete_one(spesa_id)
