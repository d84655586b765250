from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import and_, func, select
from sqlalchemy.orm import aliased

from clinica.models import Appuntamento, AppuntamentoProcedura, Procedura

from .base import BaseDAO, registra_errori

AP = AppuntamentoProcedura


def _nel_periodo(start: datetime, end: datetime):
    return and_(Appuntamento.data_appuntamento >= start, Appuntamento.data_appuntamento <= end)


def _riga_vendite(pid: str, quantita: Any, volte: Any, totale: Any, media: Any) -> dict[str, Any]:
    return {
        "procedura_id": pid,
        "quantita": int(quantita or 0),
        "volte": int(volte or 0),
        "totale": float(totale or 0),
        "prezzo_medio": float(media or 0),
    }


class ProceduraDAO(BaseDAO[Procedura]):
    model = Procedura

    def _vendite(self, start: datetime, end: datetime):
        return (
            select(
                AP.procedura_id,
                func.sum(AP.quantita).label("quantita"),
                func.count(AP.id).label("volte"),
                func.sum(AP.prezzo_totale).label("totale"),
                func.avg(AP.prezzo_unitario).label("media"),
            )
            .join(Appuntamento, Appuntamento.id == AP.appuntamento_id)
            .where(_nel_periodo(start, end))
            .group_by(AP.procedura_id)
        )

    # =========================
    # Metriche
    # =========================
    @registra_errori
    def piu_vendute(self, start: datetime, end: datetime, limit: int = 10) -> list[dict[str, Any]]:
        q = self._vendite(start, end).order_by(func.count(AP.id).desc()).limit(limit)
        return [_riga_vendite(*r) for r in self.s.execute(q)]

    @registra_errori
    def maggior_fatturato(self, start: datetime, end: datetime, limit: int = 10) -> list[dict[str, Any]]:
        q = self._vendite(start, end).order_by(func.coalesce(func.sum(AP.prezzo_totale), 0).desc()).limit(limit)
        return [_riga_vendite(*r) for r in self.s.execute(q)]

    @registra_errori
    def combinazioni(self, min_occorrenze: int = 3, limit: int = 20) -> list[dict[str, Any]]:
        """Coppie di procedure presenti nello stesso atendimento."""
        ap1 = aliased(AP)
        ap2 = aliased(AP)
        occorrenze = func.count().label("occorrenze")
        q = (
            select(ap1.procedura_id, ap2.procedura_id, occorrenze)
            .join(ap2, and_(ap1.appuntamento_id == ap2.appuntamento_id, ap1.procedura_id < ap2.procedura_id))
            .group_by(ap1.procedura_id, ap2.procedura_id)
            .having(func.count() >= min_occorrenze)
            .order_by(occorrenze.desc())
            .limit(limit)
        )
        return [{"procedure1_id": p1, "procedure2_id": p2, "occurrences": int(n)} for p1, p2, n in self.s.execute(q)]

    @registra_errori
    def statistiche(self, procedura_id: str, start: datetime, end: datetime) -> dict[str, Any]:
        row = self.s.execute(
            select(func.sum(AP.prezzo_totale), func.sum(AP.quantita), func.avg(AP.prezzo_unitario), func.count(AP.id))
            .join(Appuntamento, Appuntamento.id == AP.appuntamento_id)
            .where(AP.procedura_id == procedura_id, _nel_periodo(start, end))
        ).one()
        return {
            "procedureId": procedura_id,
            "totalRevenue": float(row[0] or 0),
            "totalQuantity": int(row[1] or 0),
            "averagePrice": float(row[2] or 0),
            "timesOrdered": int(row[3] or 0),
        }

    @registra_errori
    def trend(self, procedura_id: str, start: datetime, end: datetime) -> dict[str, Any]:
        """Confronta il periodo con quello immediatamente precedente di pari durata."""
        corrente = self.statistiche(procedura_id, start, end)
        secondi = (end - start).total_seconds()
        giorni = int(-(-secondi // 86400))
        precedente = self.statistiche(procedura_id, start - timedelta(days=giorni), start - timedelta(days=1))

        def crescita(attuale: float, prima: float) -> float:
            return ((attuale - prima) / prima) * 100 if prima > 0 else 0

        crescita_fatturato = crescita(corrente["totalRevenue"], precedente["totalRevenue"])
        crescita_quantita = crescita(corrente["totalQuantity"], precedente["totalQuantity"])
        if crescita_fatturato > 0:
            andamento = "up"
        elif crescita_fatturato < 0:
            andamento = "down"
        else:
            andamento = "stable"
        return {
            "current": corrente,
            "previous": precedente,
            "revenueGrowth": crescita_fatturato,
            "quantityGrowth": crescita_quantita,
            "trend": andamento,
        }
