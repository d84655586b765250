from __future__ import annotations

from sqlalchemy import select

from clinica.models import MedicoSpecialita, Specialita

from .base import BaseDAO, registra_errori


class SpecialitaDAO(BaseDAO[Specialita]):
    model = Specialita

    @registra_errori
    def find_by_medico(self, medico_id: str) -> list[Specialita]:
        q = (
            select(Specialita)
            .join(MedicoSpecialita, MedicoSpecialita.specialita_id == Specialita.id)
            .where(MedicoSpecialita.medico_id == medico_id)
            .order_by(Specialita.nome)
        )
        return list(self.s.scalars(q))
