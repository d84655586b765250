"""Operazioni di manutenzione sulle spese (pulizia, analisi categorie, dati di prova)."""
from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func, select

from clinica.dao import SpesaDAO
from clinica.db import db_session
from clinica.models import Spesa

logger = logging.getLogger(__name__)

SPESE_DI_PROVA = [
    ("Salário Equipe Médica", 25000.00, datetime(2026, 1, 5), "Salários"),
    ("INSS e Encargos", 7500.00, datetime(2026, 1, 10), "Impostos"),
    ("Aluguel do Consultório", 3500.00, datetime(2026, 1, 15), "Aluguel"),
    ("Equipamento de Ultrassom", 12000.00, datetime(2026, 1, 8), "Equipamentos"),
    ("Materiais Médicos", 4200.00, datetime(2026, 1, 12), "Materiais"),
    ("Limpeza e Manutenção", 1800.00, datetime(2026, 1, 18), "Serviços"),
]
MESE_DI_PROVA = "Janeiro/2026"


def svuota_spese() -> int:
    with db_session() as s:
        dao = SpesaDAO(s)
        totale = dao.count()
        logger.info("Total de despesas no banco: %d", totale)
        if totale == 0:
            return 0
        rimosse = dao.delete_many()
    logger.info("Despesas removidas: %d", rimosse)
    return rimosse


def conta_categorie_db() -> list[tuple[str, int]]:
    """(categoria, numero) dalla più frequente."""
    conteggio = func.count(Spesa.id)
    with db_session() as s:
        righe = s.execute(select(Spesa.categoria, conteggio).group_by(Spesa.categoria).order_by(conteggio.desc()))
        return [(c, int(n)) for c, n in righe]


def formatta_categorie(conteggi: list[tuple[str, int]]) -> list[str]:
    totale = sum(n for _, n in conteggi)
    return [
        f"{i:>3}. {categoria:<30} → {n:>4} registros ({(n / totale) * 100:.1f}%)"
        for i, (categoria, n) in enumerate(conteggi, start=1)
    ]


def aggiungi_spese_di_prova() -> int:
    with db_session() as s:
        dao = SpesaDAO(s)
        for pagamento, valore, data, categoria in SPESE_DI_PROVA:
            dao.create_one(pagamento=pagamento, valore=valore, data=data, categoria=categoria, mese=MESE_DI_PROVA)
            logger.info("Mock expense created: %s", pagamento)
    return len(SPESE_DI_PROVA)
