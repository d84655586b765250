from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import case, func, select
from sqlalchemy.orm import selectinload

from clinica.models import Appuntamento, AppuntamentoProcedura, Paziente
from clinica.periodi import sottrai_mesi

from .base import BaseDAO, registra_errori


class PazienteDAO(BaseDAO[Paziente]):
    model = Paziente

    # =========================
    # Metriche
    # =========================
    @registra_errori
    def segmentazione(self, start: datetime, end: datetime) -> list[dict[str, Any]]:
        """
        Pazienti con almeno un atendimento nel periodo:
        - nuovi: il PRIMO atendimento di sempre cade nel periodo
        - ricorrenti: il primo atendimento è precedente al periodo
        """
        nel_periodo = select(Appuntamento.paziente_id).where(
            Appuntamento.data_appuntamento >= start, Appuntamento.data_appuntamento <= end
        )
        q = (
            select(Paziente.id, Paziente.nome_completo, Paziente.cpf, Appuntamento.data_appuntamento, Appuntamento.valore_esame)
            .join(Appuntamento, Appuntamento.paziente_id == Paziente.id)
            .where(Paziente.id.in_(nel_periodo))
            .order_by(Paziente.id, Appuntamento.data_appuntamento.asc())
        )

        per_paziente: dict[str, dict[str, Any]] = {}
        for pid, nome, cpf, data, valore in self.s.execute(q):
            p = per_paziente.setdefault(
                pid,
                {
                    "id": pid,
                    "fullName": nome,
                    "cpf": cpf,
                    "appointmentCount": 0,
                    "isNew": False,
                    "isRecurring": False,
                    "firstAppointmentDate": data,
                    "lastAppointmentDate": None,
                    "totalSpent": 0.0,
                },
            )
            if start <= data <= end:
                p["appointmentCount"] += 1
                p["lastAppointmentDate"] = data
                p["totalSpent"] += float(valore or 0)

        for p in per_paziente.values():
            primo = p["firstAppointmentDate"]
            p["isNew"] = start <= primo <= end
            p["isRecurring"] = primo < start and p["appointmentCount"] > 0
        return list(per_paziente.values())

    @registra_errori
    def pazienti_a_rischio(
        self,
        mesi: int = 3,
        medico_id: str | None = None,
        procedura_id: str | None = None,
    ) -> list[dict[str, Any]]:
        """Pazienti il cui ultimo atendimento è più vecchio di `mesi` mesi."""
        adesso = datetime.now()
        cutoff = sottrai_mesi(adesso, mesi)

        ultimo = (
            select(Appuntamento.paziente_id, func.max(Appuntamento.data_appuntamento).label("ultima"))
            .where(Appuntamento.paziente_id.is_not(None))
            .group_by(Appuntamento.paziente_id)
            .subquery()
        )
        q = (
            select(Appuntamento)
            .join(
                ultimo,
                (ultimo.c.paziente_id == Appuntamento.paziente_id) & (ultimo.c.ultima == Appuntamento.data_appuntamento),
            )
            .where(ultimo.c.ultima < cutoff)
            .options(
                selectinload(Appuntamento.paziente),
                selectinload(Appuntamento.medico),
                selectinload(Appuntamento.specialita),
                selectinload(Appuntamento.procedure).selectinload(AppuntamentoProcedura.procedura),
            )
            .order_by(Appuntamento.data_appuntamento.desc())
        )

        visti: set[str] = set()
        risultato = []
        for app in self.s.scalars(q):
            # più atendimenti nello stesso giorno: si tiene il primo
            if app.paziente_id in visti:
                continue
            visti.add(app.paziente_id)

            if medico_id and app.medico_id != medico_id:
                continue
            if procedura_id and not any(ap.procedura_id == procedura_id for ap in app.procedure):
                continue

            paz = app.paziente
            risultato.append(
                {
                    "id": paz.id,
                    "fullName": paz.nome_completo,
                    "cpf": paz.cpf,
                    "homePhone": paz.telefono_casa,
                    "mobilePhone": paz.cellulare,
                    "lastAppointmentDate": app.data_appuntamento,
                    "daysSinceLastAppointment": (adesso - app.data_appuntamento).days,
                    "lastDoctorId": app.medico.id if app.medico else None,
                    "lastDoctorName": app.medico.nome if app.medico else None,
                    "lastSpecialtyName": app.specialita.nome if app.specialita else None,
                    "lastProcedures": [{"id": ap.procedura.id, "name": ap.procedura.nome} for ap in app.procedure],
                }
            )
        return risultato

    @registra_errori
    def nuovi_pazienti(self, start: datetime, end: datetime) -> int:
        primo = (
            select(func.min(Appuntamento.data_appuntamento).label("primo"))
            .where(Appuntamento.paziente_id.is_not(None))
            .group_by(Appuntamento.paziente_id)
            .subquery()
        )
        q = select(func.count()).select_from(primo).where(primo.c.primo >= start, primo.c.primo <= end)
        return int(self.s.scalar(q) or 0)

    @registra_errori
    def tasso_ritorno(self) -> dict[str, Any]:
        """Percentuale di pazienti con più di un atendimento."""
        per_paziente = (
            select(func.count(Appuntamento.id).label("n"))
            .where(Appuntamento.paziente_id.is_not(None))
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
