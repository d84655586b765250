"""Utility per date e periodi usati dalle metriche."""
from __future__ import annotations

import calendar
from datetime import date, datetime, time, timedelta

FINE_GIORNATA = time(23, 59, 59, 999000)


def parse_data(valore: str | None, nome: str) -> date:
    """
    Accetta 'YYYY-MM-DD' oppure una data ISO completa (anche con 'Z').
    Solleva ValueError con un messaggio leggibile se manca o non è valida.
    """
    if valore is None or not str(valore).strip():
        raise ValueError(f"{nome} is required")
    testo = str(valore).strip()
    try:
        if len(testo) == 10:
            return date.fromisoformat(testo)
        return datetime.fromisoformat(testo.replace("Z", "+00:00")).date()
    except ValueError:
        raise ValueError(f"Invalid {nome} format. Expected ISO date string or YYYY-MM-DD") from None


def inizio_giorno(d: date) -> datetime:
    return datetime.combine(d, time.min)


def fine_giorno(d: date) -> datetime:
    return datetime.combine(d, FINE_GIORNATA)


def intervallo(start: str | None, end: str | None) -> tuple[datetime, datetime]:
    """startDate normalizzata a 00:00:00.000, endDate a 23:59:59.999."""
    return inizio_giorno(parse_data(start, "startDate")), fine_giorno(parse_data(end, "endDate"))


def intervallo_opzionale(start: str | None, end: str | None) -> tuple[datetime | None, datetime | None]:
    s = inizio_giorno(parse_data(start, "startDate")) if start else None
    e = fine_giorno(parse_data(end, "endDate")) if end else None
    return s, e


def sottrai_mesi(dt: datetime, mesi: int) -> datetime:
    anno, mese = divmod(dt.year * 12 + (dt.month - 1) - mesi, 12)
    mese += 1
    giorno = min(dt.day, calendar.monthrange(anno, mese)[1])
    return dt.replace(year=anno, month=mese, day=giorno)


def inizio_mese(dt: datetime) -> datetime:
    return datetime(dt.year, dt.month, 1)


def mesi_nel_periodo(start: datetime, end: datetime) -> list[datetime]:
    """Primo giorno di ogni mese toccato dal periodo, in ordine."""
    mesi = []
    corrente = inizio_mese(start)
    while corrente <= end:
        mesi.append(corrente)
        anno, mese = divmod(corrente.month, 12)
        corrente = datetime(corrente.year + anno, mese + 1, 1)
    return mesi


def giorni_tra(start: datetime, end: datetime) -> int:
    """Numero di giorni arrotondato per eccesso (come Math.ceil sui millisecondi)."""
    secondi = (end - start).total_seconds()
    giorni = int(secondi // 86400)
    return giorni + 1 if secondi - giorni * 86400 > 0 else giorni


def oggi() -> tuple[datetime, datetime]:
    inizio = inizio_giorno(date.today())
    return inizio, inizio + timedelta(days=1)


def settimana_corrente() -> tuple[datetime, datetime]:
    """Settimana da domenica a sabato che contiene oggi."""
    inizio, _ = oggi()
    # weekday(): lunedì=0 ... domenica=6
    inizio -= timedelta(days=(inizio.weekday() + 1) % 7)
    return inizio, inizio + timedelta(days=7)
