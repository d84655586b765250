"""
Importazione delle spese dal foglio Excel "BASE DE DADOS".

Colonne (lettere Excel): G pagamento, H valore, I mese, J data, K categoria.
I dati partono dalla riga 4; la lettura si ferma dopo 10 righe vuote consecutive.
"""
from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import pandas as pd

from clinica.config import EXPENSES_XLSX
from clinica.dao import SpesaDAO
from clinica.db import db_session

logger = logging.getLogger(__name__)

FOGLIO = "BASE DE DADOS"
PRIMA_RIGA = 4
MAX_RIGHE_VUOTE = 10

# indici 0-based delle colonne G..K
COL_PAGAMENTO = 6
COL_VALORE = 7
COL_MESE = 8
COL_DATA = 9
COL_CATEGORIA = 10

EPOCA_EXCEL = datetime(1899, 12, 30)

CATEGORY_MAPPING: dict[str, str] = {
    "Médico": "MÉDICO",
    "MÉDICO": "MÉDICO",
    "Terceiros": "TERCEIROS",
    "Marketing": "MARKETING",
    "insumos": "INSUMOS",
    "Suprimentos": "INSUMOS",
    "OUTROS": "OUTROS",
    "Outros": "OUTROS",
    "Funcionário": "FUNCIONÁRIO",
    "FUNCIONARIO": "FUNCIONÁRIO",
    "Estorno": "ESTORNO",
    "ESTORNO": "ESTORNO",
    "TROCO": "TROCO",
    "Troco": "TROCO",
    "FAXINA": "FAXINA",
    "Laboratorio": "LABORATÓRIO",
    "LABORATORIO": "LABORATÓRIO",
    "CONTADOR": "CONTADOR",
    "IMPOSTO": "IMPOSTO",
    "EMPRESTIMO": "EMPRÉSTIMO",
    "ENERGIA": "ENERGIA",
    "INTERNET": "INTERNET",
    "SISTEMA": "SISTEMA",
    "FAST IA": "SISTEMA",
    "FAST": "SISTEMA",
    "Aluguel": "ALUGUEL",
    "ALUGUEL": "ALUGUEL",
    "Royalties": "ROYALTIES",
    "ROYALTIES": "ROYALTIES",
    "SEGURANÇA": "SEGURANÇA",
    "SEGURANCA": "SEGURANÇA",
    "VIGILANTE": "SEGURANÇA",
    "CONSORCIO": "CONSÓRCIO",
    "MAQUINARIO": "MAQUINÁRIO",
    "MÁQUINA": "MAQUINÁRIO",
    "SEGURO": "SEGURO",
    "CONSULTORIA": "CONSULTORIA",
    "LIXO": "LIXO",
    "TARIFA PIX": "TARIFA",
    "MISAEL": "OUTROS",
    "BRASCON": "OUTROS",
}


class FoglioNonTrovato(LookupError):
    pass


@dataclass(frozen=True)
class RigaSpesa:
    riga: int
    pagamento: str
    valore: float
    data: datetime
    categoria: str
    mese: str | None = None


def normalizza_categoria(categoria: str) -> str:
    pulita = categoria.strip()
    return CATEGORY_MAPPING.get(pulita, pulita.upper())


def _vuota(v: Any) -> bool:
    if v is None:
        return True
    if isinstance(v, str):
        return not v.strip()
    return bool(pd.isna(v))


def parse_valore(v: Any) -> float | None:
    if isinstance(v, str):
        testo = re.sub(r"R\$|\s", "", v)
        # formato BR: "1.234,56"
        if "," in testo:
            testo = testo.replace(".", "").replace(",", ".")
        try:
            return float(testo)
        except ValueError:
            return None
    if _vuota(v):
        return None
    return float(v)


def parse_data_excel(v: Any) -> datetime | None:
    """Accetta datetime/Timestamp, numero seriale Excel o stringa."""
    if isinstance(v, pd.Timestamp):
        return None if pd.isna(v) else v.to_pydatetime()
    if isinstance(v, datetime):
        return v
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        if pd.isna(v):
            return None
        return EPOCA_EXCEL + timedelta(days=float(v))
    if isinstance(v, str) and v.strip():
        ts = pd.to_datetime(v.strip(), dayfirst=True, errors="coerce")
        return None if pd.isna(ts) else ts.to_pydatetime()
    return None


def leggi_foglio(percorso: str | Path = EXPENSES_XLSX) -> pd.DataFrame:
    """Foglio grezzo senza intestazioni: le righe partono dalla prima del file."""
    try:
        return pd.read_excel(percorso, sheet_name=FOGLIO, header=None, engine="openpyxl")
    except ValueError as e:
        # pandas solleva ValueError se il foglio non esiste
        raise FoglioNonTrovato(f'Aba "{FOGLIO}" não encontrada no arquivo Excel!') from e


def _cella(df: pd.DataFrame, indice: int, col: int) -> Any:
    if indice >= len(df) or col >= df.shape[1]:
        return None
    return df.iat[indice, col]


def righe_spese(df: pd.DataFrame) -> list[RigaSpesa]:
    spese: list[RigaSpesa] = []
    vuote = 0
    indice = PRIMA_RIGA - 1
    while vuote < MAX_RIGHE_VUOTE:
        riga = indice + 1
        pagamento = _cella(df, indice, COL_PAGAMENTO)
        valore = _cella(df, indice, COL_VALORE)
        data = _cella(df, indice, COL_DATA)
        categoria = _cella(df, indice, COL_CATEGORIA)
        mese = _cella(df, indice, COL_MESE)
        indice += 1

        if all(_vuota(v) for v in (pagamento, valore, data, categoria)):
            vuote += 1
            continue
        vuote = 0

        if _vuota(pagamento) or _vuota(valore) or _vuota(data) or _vuota(categoria):
            logger.warning("Linha %d incompleta, pulando...", riga)
            continue

        numero = parse_valore(valore)
        quando = parse_data_excel(data)
        if numero is None or quando is None:
            logger.warning("Linha %d: valor ou data inválidos, pulando...", riga)
            continue

        spese.append(
            RigaSpesa(
                riga=riga,
                pagamento=str(pagamento).strip(),
                valore=numero,
                data=quando,
                categoria=normalizza_categoria(str(categoria)),
                mese=None if _vuota(mese) else str(mese).strip(),
            )
        )
    logger.info("Total de %d despesas encontradas", len(spese))
    return spese


def importa_spese(percorso: str | Path = EXPENSES_XLSX) -> dict[str, int]:
    logger.info("Lendo arquivo Excel: %s", percorso)
    spese = righe_spese(leggi_foglio(percorso))
    if not spese:
        logger.warning("Nenhuma despesa encontrada na planilha.")
        return {"total": 0, "imported": 0}

    with db_session() as s:
        dao = SpesaDAO(s)
        for n, sp in enumerate(spese, start=1):
            dao.create_one(pagamento=sp.pagamento, valore=sp.valore, data=sp.data, categoria=sp.categoria, mese=sp.mese)
            logger.info("[%d/%d] %s - R$ %.2f (%s)", n, len(spese), sp.pagamento, sp.valore, sp.categoria)
    return {"total": len(spese), "imported": len(spese)}


def conta_categorie_foglio(percorso: str | Path = EXPENSES_XLSX) -> list[tuple[str, int]]:
    """Categorie grezze (non normalizzate) del foglio, dalla più frequente."""
    df = leggi_foglio(percorso)
    conteggi: Counter[str] = Counter()
    vuote = 0
    indice = PRIMA_RIGA - 1
    while vuote < MAX_RIGHE_VUOTE:
        pagamento = _cella(df, indice, COL_PAGAMENTO)
        categoria = _cella(df, indice, COL_CATEGORIA)
        indice += 1
        if _vuota(pagamento) and _vuota(categoria):
            vuote += 1
            continue
        vuote = 0
        if not _vuota(categoria):
            conteggi[str(categoria).strip()] += 1
    return conteggi.most_common()
