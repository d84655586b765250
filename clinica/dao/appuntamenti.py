from __future__ import annotations

from collections import OrderedDict
from datetime import datetime
from typing import Any

from sqlalchemy import and_, func, select

from clinica.models import Appuntamento
from clinica.periodi import inizio_mese, oggi, settimana_corrente

from .base import BaseDAO, registra_errori


def _nel_periodo(start: datetime, end: datetime):
    return and_(Appuntamento.data_appuntamento >= start, Appuntamento.data_appuntamento <= end)


def _f(valore: Any) -> float:
    return float(valore or 0)


class AppuntamentoDAO(BaseDAO[Appuntamento]):
    model = Appuntamento

    # =========================
    # Metriche
    # =========================
    @registra_errori
    def metriche_finanziarie(self, start: datetime, end: datetime, *criteri) -> dict[str, Any]:
        row = self.s.execute(
            select(
                func.count(Appuntamento.id),
                func.sum(Appuntamento.valore_esame),
                func.sum(Appuntamento.valore_pagato),
                func.avg(Appuntamento.valore_esame),
                func.avg(Appuntamento.valore_pagato),
            ).where(_nel_periodo(start, end), *criteri)
        ).one()
        return {
            "count": int(row[0] or 0),
            "somma_esame": _f(row[1]),
            "somma_pagato": _f(row[2]),
            "media_esame": _f(row[3]),
            "media_pagato": _f(row[4]),
        }

    @registra_errori
    def stato_pagamenti(self, start: datetime, end: datetime) -> list[dict[str, Any]]:
        q = (
            select(
                Appuntamento.pagato,
                func.count(Appuntamento.id),
                func.sum(Appuntamento.valore_esame),
                func.sum(Appuntamento.valore_pagato),
            )
            .where(_nel_periodo(start, end))
            .group_by(Appuntamento.pagato)
        )
        return [
            {"pagato": bool(p), "count": int(c), "somma_esame": _f(se), "somma_pagato": _f(sp)}
            for p, c, se, sp in self.s.execute(q)
        ]

    @registra_errori
    def per_convenzione(self, start: datetime, end: datetime) -> list[dict[str, Any]]:
        q = (
            select(
                Appuntamento.convenzione,
                func.count(Appuntamento.id),
                func.sum(Appuntamento.valore_esame),
                func.sum(Appuntamento.valore_pagato),
            )
            .where(_nel_periodo(start, end), Appuntamento.convenzione.is_not(None))
            .group_by(Appuntamento.convenzione)
            .order_by(Appuntamento.convenzione)
        )
        return [
            {"convenzione": conv, "count": int(c), "somma_esame": _f(se), "somma_pagato": _f(sp)}
            for conv, c, se, sp in self.s.execute(q)
        ]

    @registra_errori
    def per_medico(self, start: datetime, end: datetime) -> list[dict[str, Any]]:
        q = (
            select(
                Appuntamento.medico_id,
                func.count(Appuntamento.id),
                func.sum(Appuntamento.valore_esame),
                func.sum(Appuntamento.valore_pagato),
                func.avg(Appuntamento.valore_esame),
            )
            .where(_nel_periodo(start, end), Appuntamento.medico_id.is_not(None))
            .group_by(Appuntamento.medico_id)
            .order_by(Appuntamento.medico_id)
        )
        return [
            {"medico_id": mid, "count": int(c), "somma_esame": _f(se), "somma_pagato": _f(sp), "media_esame": _f(me)}
            for mid, c, se, sp, me in self.s.execute(q)
        ]

    @registra_errori
    def serie_temporale(self, start: datetime, end: datetime) -> list[dict[str, Any]]:
        """Raggruppa per mese (primo giorno del mese) in Python: portabile tra SQLite e Postgres."""
        q = (
            select(Appuntamento.data_appuntamento, Appuntamento.valore_esame, Appuntamento.valore_pagato)
            .where(_nel_periodo(start, end))
            .order_by(Appuntamento.data_appuntamento)
        )
        gruppi: "OrderedDict[datetime, dict[str, Any]]" = OrderedDict()
        for data, esame, pagato in self.s.execute(q):
            chiave = inizio_mese(data)
            g = gruppi.setdefault(chiave, {"period": chiave, "count": 0, "revenue": 0.0, "received": 0.0})
            g["count"] += 1
            g["revenue"] += _f(esame)
            g["received"] += _f(pagato)
        return list(gruppi.values())

    def appuntamenti_oggi(self) -> int:
        inizio, fine = oggi()
        return self.count(Appuntamento.data_appuntamento >= inizio, Appuntamento.data_appuntamento < fine)

    def appuntamenti_settimana(self) -> int:
        inizio, fine = settimana_corrente()
        return self.count(Appuntamento.data_appuntamento >= inizio, Appuntamento.data_appuntamento < fine)
