from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import and_, case, func, select
from sqlalchemy.orm import selectinload

from clinica.models import Appuntamento, Medico, MedicoSpecialita
from clinica.periodi import giorni_tra

from .base import BaseDAO, registra_errori


def _nel_periodo(start: datetime, end: datetime):
    return and_(Appuntamento.data_appuntamento >= start, Appuntamento.data_appuntamento <= end)


class MedicoDAO(BaseDAO[Medico]):
    model = Medico

    def find_con_specialita(self, *criteri, **kw) -> list[Medico]:
        return self.find_many(
            *criteri,
            opzioni=[selectinload(Medico.specialita).selectinload(MedicoSpecialita.specialita)],
            order_by=kw.pop("order_by", Medico.nome),
            **kw,
        )

    @registra_errori
    def top_per_fatturato(self, start: datetime, end: datetime, limit: int = 10) -> list[dict[str, Any]]:
        somma = func.sum(Appuntamento.valore_esame)
        q = (
            select(Appuntamento.medico_id, somma)
            .where(_nel_periodo(start, end), Appuntamento.medico_id.is_not(None))
            .group_by(Appuntamento.medico_id)
            .order_by(func.coalesce(somma, 0).desc())
            .limit(limit)
        )
        return [{"medico_id": mid, "somma_esame": float(tot or 0)} for mid, tot in self.s.execute(q)]

    @registra_errori
    def produttivita(self, medico_id: str, start: datetime, end: datetime) -> dict[str, Any]:
        totale = int(
            self.s.scalar(
                select(func.count(Appuntamento.id)).where(Appuntamento.medico_id == medico_id, _nel_periodo(start, end))
            )
            or 0
        )
        giorni = giorni_tra(start, end)
        return {
            "totalAppointments": totale,
            "days": giorni,
            "appointmentsPerDay": totale / giorni if giorni > 0 else 0,
        }

    @registra_errori
    def tasso_ritorno_medico(self, medico_id: str) -> dict[str, Any]:
        """Percentuale dei pazienti del medico con più di un atendimento con lui."""
        per_paziente = (
            select(Appuntamento.paziente_id, func.count(Appuntamento.id).label("n"))
            .where(Appuntamento.medico_id == medico_id, Appuntamento.paziente_id.is_not(None))
            .group_by(Appuntamento.paziente_id)
            .subquery()
        )
        totale, ritorni = self.s.execute(
            select(func.count(), func.coalesce(func.sum(case((per_paziente.c.n > 1, 1), else_=0)), 0)).select_from(
                per_paziente
            )
        ).one()
        totale, ritorni = int(totale), int(ritorni)
        return {
            "totalPatients": totale,
            "returningPatients": ritorni,
            "returnRate": (ritorni / totale) * 100 if totale > 0 else 0,
        }


class MedicoSpecialitaDAO(BaseDAO[MedicoSpecialita]):
    model = MedicoSpecialita
