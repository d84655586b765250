from __future__ import annotations

from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import selectinload

from clinica.dao import AppuntamentoDAO, SpecialitaDAO
from clinica.db import db_session
from clinica.models import Appuntamento, MedicoSpecialita, Procedura, Specialita

from .comuni import paginazione


def _conteggi(s, ids: list[str]) -> dict[str, dict[str, int]]:
    """_count per specialità: medici associati, procedure e atendimenti."""
    conteggi = {i: {"doctorSpecialties": 0, "procedures": 0, "appointments": 0} for i in ids}
    for chiave, colonna, id_col in (
        ("doctorSpecialties", MedicoSpecialita.specialita_id, MedicoSpecialita.id),
        ("procedures", Procedura.specialita_id, Procedura.id),
        ("appointments", Appuntamento.specialita_id, Appuntamento.id),
    ):
        righe = s.execute(select(colonna, func.count(id_col)).where(colonna.in_(ids)).group_by(colonna))
        for specialita_id, n in righe:
            conteggi[specialita_id][chiave] = int(n)
    return conteggi


def _flat(sp: Specialita, conteggio: dict[str, int]) -> dict[str, Any]:
    return {
        "id": sp.id,
        "externalId": sp.external_id,
        "sourceSystem": sp.source_system,
        "name": sp.nome,
        "acronym": sp.sigla,
        "createdAt": sp.created_at,
        "_count": conteggio,
    }


def lista_specialita(page: int = 1, limit: int = 10, search: str | None = None) -> dict[str, Any]:
    criteri = [Specialita.nome.ilike(f"%{search}%")] if search else []
    with db_session() as s:
        dao = SpecialitaDAO(s)
        righe = dao.find_many(*criteri, order_by=Specialita.nome.asc(), skip=(page - 1) * limit, take=limit)
        totale = dao.count(*criteri)
        conteggi = _conteggi(s, [sp.id for sp in righe])
        return {
            "data": [_flat(sp, conteggi[sp.id]) for sp in righe],
            "pagination": paginazione(page, limit, totale),
        }


def dettaglio_specialita(specialita_id: str) -> dict[str, Any] | None:
    """Specialità con i medici associati e gli ultimi 10 atendimenti."""
    with db_session() as s:
        sp = SpecialitaDAO(s).find_by_id(
            specialita_id, opzioni=[selectinload(Specialita.medici).selectinload(MedicoSpecialita.medico)]
        )
        if sp is None:
            return None

        ultimi = AppuntamentoDAO(s).find_many(
            specialita_id=specialita_id,
            order_by=Appuntamento.data_appuntamento.desc(),
            take=10,
            opzioni=[selectinload(Appuntamento.medico), selectinload(Appuntamento.paziente)],
        )
        d = _flat(sp, _conteggi(s, [sp.id])[sp.id])
        d["doctorSpecialties"] = [
            {"id": ms.id, "doctor": {"id": ms.medico.id, "name": ms.medico.nome, "crm": ms.medico.crm}}
            for ms in sp.medici
        ]
        d["appointments"] = [
            {
                "id": a.id,
                "appointmentDate": a.data_appuntamento,
                "examValue": a.valore_esame,
                "doctor": {"id": a.medico.id, "name": a.medico.nome} if a.medico else None,
                "patient": {"id": a.paziente.id, "fullName": a.paziente.nome_completo} if a.paziente else None,
            }
            for a in ultimi
        ]
        return d
