from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.orm import selectinload

from clinica.dao import ProceduraDAO
from clinica.db import db_session
from clinica.models import Appuntamento, AppuntamentoProcedura, Procedura

from .comuni import medico_breve, paginazione, periodo, procedura_flat


def _cerca(search: str | None) -> list[Any]:
    if not search:
        return []
    like = f"%{search}%"
    return [or_(Procedura.nome.ilike(like), Procedura.codice.ilike(like))]


def _pagina_procedure(s, page: int, limit: int, search: str | None) -> tuple[list[dict[str, Any]], int]:
    criteri = _cerca(search)
    dao = ProceduraDAO(s)
    procedure = dao.find_many(*criteri, order_by=Procedura.nome.asc(), skip=(page - 1) * limit, take=limit)
    totale = dao.count(*criteri)

    ids = [p.id for p in procedure]
    conteggi = dict(
        s.execute(
            select(AppuntamentoProcedura.procedura_id, func.count(AppuntamentoProcedura.id))
            .where(AppuntamentoProcedura.procedura_id.in_(ids))
            .group_by(AppuntamentoProcedura.procedura_id)
        ).all()
    )
    dati = []
    for p in procedure:
        d = procedura_flat(p)
        d["appointmentCount"] = int(conteggi.get(p.id, 0))
        dati.append(d)
    return dati, totale


def lista_procedure(page: int = 1, limit: int = 10, search: str | None = None) -> dict[str, Any]:
    with db_session() as s:
        dati, totale = _pagina_procedure(s, page, limit, search)
    return {"data": dati, "pagination": paginazione(page, limit, totale)}


def metriche_procedure(
    start: datetime, end: datetime, page: int = 1, limit: int = 10, search: str | None = None
) -> dict[str, Any]:
    with db_session() as s:
        dao = ProceduraDAO(s)
        piu_vendute = dao.piu_vendute(start, end, 10)
        maggior_fatturato = dao.maggior_fatturato(start, end, 10)

        ids = {r["procedura_id"] for r in piu_vendute + maggior_fatturato if r["procedura_id"]}
        dettagli = {p.id: p for p in dao.find_many(Procedura.id.in_(ids))} if ids else {}

        def arricchisci(r: dict[str, Any]) -> dict[str, Any]:
            p = dettagli.get(r["procedura_id"])
            return {
                "procedureId": r["procedura_id"],
                "name": p.nome if p else "Desconhecido",
                "code": p.codice if p else None,
                "quantitySold": r["quantita"],
                "timesOrdered": r["volte"],
                "totalRevenue": r["totale"],
                "averagePrice": r["prezzo_medio"],
                "defaultPrice": p.prezzo_base if p and p.prezzo_base else None,
            }

        procedure, totale = _pagina_procedure(s, page, limit, search)
        return {
            "summary": {"totalProcedures": dao.count()},
            "topSelling": [arricchisci(r) for r in piu_vendute if r["procedura_id"]],
            "topRevenue": [arricchisci(r) for r in maggior_fatturato if r["procedura_id"]],
            "procedures": procedure,
            "pagination": paginazione(page, limit, totale),
            "period": periodo(start, end),
        }


def dettaglio_procedura(
    procedura_id: str, start: datetime | None = None, end: datetime | None = None
) -> dict[str, Any] | None:
    """
    Procedura con le metriche degli atendimenti che la contengono.
    Il fatturato è la somma di valore_pagato per atendimento (ogni atendimento contato una volta).
    """
    with db_session() as s:
        dao = ProceduraDAO(s)
        p = dao.find_by_id(procedura_id)
        if p is None:
            return None

        criteri: list[Any] = [
            Appuntamento.id.in_(
                select(AppuntamentoProcedura.appuntamento_id).where(AppuntamentoProcedura.procedura_id == procedura_id)
            )
        ]
        if start is not None:
            criteri.append(Appuntamento.data_appuntamento >= start)
        if end is not None:
            criteri.append(Appuntamento.data_appuntamento <= end)

        appuntamenti = list(
            s.scalars(
                select(Appuntamento)
                .where(*criteri)
                .options(selectinload(Appuntamento.paziente), selectinload(Appuntamento.medico))
                .order_by(Appuntamento.data_appuntamento.desc())
            )
        )

        fatturato = sum(float(a.valore_pagato or 0) for a in appuntamenti)
        n = len(appuntamenti)

        statistiche = None
        if start is not None and end is not None:
            statistiche = dao.trend(procedura_id, start, end)

        return {
            "procedure": {"id": p.id, "name": p.nome, "code": p.codice, "defaultPrice": p.prezzo_base},
            "metrics": {
                "totalRevenue": fatturato,
                "totalAppointments": n,
                "averageTicket": fatturato / n if n > 0 else 0,
            },
            "trend": statistiche,
            "appointments": [
                {
                    "id": a.id,
                    "appointmentDate": a.data_appuntamento,
                    "appointmentTime": a.ora_appuntamento,
                    "examValue": a.valore_esame,
                    "paidValue": a.valore_pagato,
                    "paymentDone": a.pagato,
                    "insuranceName": a.convenzione,
                    "patient": (
                        {"id": a.paziente.id, "fullName": a.paziente.nome_completo, "cpf": a.paziente.cpf}
                        if a.paziente
                        else None
                    ),
                    "doctor": medico_breve(a.medico),
                }
                for a in appuntamenti[:10]
            ],
            "period": periodo(start, end),
        }


def combinazioni_procedure(min_occorrenze: int = 3, limit: int = 20) -> list[dict[str, Any]]:
    with db_session() as s:
        dao = ProceduraDAO(s)
        coppie = dao.combinazioni(min_occorrenze, limit)
        ids = {c["procedure1_id"] for c in coppie} | {c["procedure2_id"] for c in coppie}
        nomi = {p.id: p.nome for p in dao.find_many(Procedura.id.in_(ids))} if ids else {}
        return [
            {
                "procedure1": {"id": c["procedure1_id"], "name": nomi.get(c["procedure1_id"])},
                "procedure2": {"id": c["procedure2_id"], "name": nomi.get(c["procedure2_id"])},
                "occurrences": c["occurrences"],
            }
            for c in coppie
        ]
