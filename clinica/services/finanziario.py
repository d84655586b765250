from __future__ import annotations

import calendar
from datetime import datetime
from typing import Any

from sqlalchemy import or_

from clinica.dao import AppuntamentoDAO, SpesaDAO
from clinica.db import db_session
from clinica.fatturato import calcola_fatturato_totale, criterio_periodo_fatturato
from clinica.models import Spesa
from clinica.periodi import fine_giorno, mesi_nel_periodo

from .spese import spesa_flat


def _mesi_completi(start: datetime, end: datetime) -> int:
    """Mesi interi trascorsi tra le due date (come differenceInMonths)."""
    mesi = (end.year - start.year) * 12 + (end.month - start.month)
    if (end.day, end.time()) < (start.day, start.time()):
        mesi -= 1
    return mesi


def _fine_mese(primo: datetime) -> datetime:
    return fine_giorno(primo.replace(day=calendar.monthrange(primo.year, primo.month)[1]).date())


def metriche_finanziarie(
    start: datetime, end: datetime, category: str | None = None, search: str | None = None
) -> dict[str, Any]:
    """
    Fatturato (regola PRÉ-PAGO), spese e profitto del periodo.
    La serie mensile viene prodotta solo se il periodo copre almeno un mese intero.
    """
    criteri_spese: list[Any] = [SpesaDAO.nel_periodo(start, end)]
    if category:
        criteri_spese.append(Spesa.categoria == category)
    if search:
        like = f"%{search}%"
        criteri_spese.append(or_(Spesa.pagamento.ilike(like), Spesa.categoria.ilike(like)))

    with db_session() as s:
        app_dao = AppuntamentoDAO(s)
        spesa_dao = SpesaDAO(s)

        fatturato = calcola_fatturato_totale(app_dao.find_many(criterio_periodo_fatturato(start, end)), start, end)
        spese = spesa_dao.find_many(*criteri_spese, order_by=Spesa.data.desc())
        totale_spese = spesa_dao.totale(*criteri_spese)

        # il ranking ignora i filtri category/search
        ranking = spesa_dao.per_categoria(spesa_dao.nel_periodo(start, end))
        somma_ranking = sum(r["totale"] for r in ranking)

        serie: list[dict[str, Any]] = []
        if _mesi_completi(start, end) >= 1:
            for primo in mesi_nel_periodo(start, _fine_mese(end)):
                ultimo = _fine_mese(primo)
                entrate = calcola_fatturato_totale(
                    app_dao.find_many(criterio_periodo_fatturato(primo, ultimo)), primo, ultimo
                )
                uscite = spesa_dao.totale(spesa_dao.nel_periodo(primo, ultimo))
                serie.append(
                    {
                        "period": primo.strftime("%m/%y"),
                        "revenue": entrate,
                        "expenses": uscite,
                        "profit": entrate - uscite,
                    }
                )

        return {
            "summary": {
                "totalRevenue": fatturato,
                "totalExpenses": totale_spese,
                "totalProfit": fatturato - totale_spese,
            },
            "categoryRanking": [
                {
                    "category": r["categoria"],
                    "totalValue": r["totale"],
                    "count": r["count"],
                    "percentage": (r["totale"] / somma_ranking) * 100 if somma_ranking > 0 else 0,
                }
                for r in ranking
            ],
            "timeSeries": serie,
            "expenses": [spesa_flat(e) for e in spese],
            "period": {"startDate": start, "endDate": end},
        }
