"""Conversioni dei formati del sistema legacy (date BR, centesimi, HTML di stato)."""
from __future__ import annotations

import re
import unicodedata
from datetime import datetime

_TAG = re.compile(r"<[^>]*>")
_STRONG = re.compile(r"<strong>(.*?)</strong>", re.IGNORECASE | re.DOTALL)


def parse_data_br(valore: str | None) -> datetime | None:
    """'dd/mm/yyyy' -> datetime a mezzanotte. None se vuota o non valida (es. 31/02)."""
    if not valore or not valore.strip():
        return None
    parti = valore.strip().split("/")
    if len(parti) != 3:
        return None
    try:
        giorno, mese, anno = (int(p) for p in parti)
    except ValueError:
        return None
    if anno < 1900:
        return None
    try:
        return datetime(anno, mese, giorno)
    except ValueError:
        return None


def parse_centesimi(valore: str | None) -> float | None:
    """
    I valori degli atendimenti arrivano sempre in centesimi, senza separatori:
    "11500" -> 115.0, "113550" -> 1135.5. Zero vale None.
    """
    if not valore or valore in ("0", "0,00", "0.00"):
        return None
    pulito = re.sub(r"[.,]", "", valore)
    try:
        return int(pulito) / 100
    except ValueError:
        return None


def parse_prezzo_br(valore: str | None) -> float | None:
    """Decimale brasiliano: "1.234,50" -> 1234.5. Zero vale None."""
    if not valore or valore in ("0", "0,00"):
        return None
    try:
        return float(valore.replace(".", "").replace(",", "."))
    except ValueError:
        return None


def normalizza_nome(testo: str) -> str:
    """Senza accenti, spazi compattati, maiuscolo."""
    decomposto = unicodedata.normalize("NFD", testo)
    senza_accenti = "".join(c for c in decomposto if not unicodedata.combining(c))
    return re.sub(r"\s+", " ", senza_accenti).strip().upper()


def estrai_stato(html: str | None) -> str | None:
    if not html or not html.strip():
        return None
    m = _STRONG.search(html)
    if m and m.group(1).strip():
        return m.group(1).strip()
    testo = _TAG.sub("", html).strip()
    return testo or None
