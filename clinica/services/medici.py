from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import selectinload

from clinica.dao import AppuntamentoDAO, MedicoDAO, SpecialitaDAO
from clinica.db import db_session
from clinica.fatturato import calcola_fatturato_totale, criterio_periodo_fatturato
from clinica.models import Appuntamento, AppuntamentoProcedura, Medico, MedicoSpecialita

from .comuni import medico_flat, paginazione, periodo, procedure_di

# limiti usati quando il periodo non è indicato
INIZIO_STORICO = datetime(1900, 1, 1)
FINE_STORICO = datetime(2100, 12, 31)


def _specialita_di(m: Medico) -> list[dict[str, Any]]:
    return [{"id": ms.specialita.id, "name": ms.specialita.nome} for ms in m.specialita]


def lista_medici(
    page: int = 1, limit: int = 10, specialty_id: str | None = None, search: str | None = None
) -> dict[str, Any]:
    criteri: list[Any] = []
    if specialty_id:
        criteri.append(
            Medico.id.in_(select(MedicoSpecialita.medico_id).where(MedicoSpecialita.specialita_id == specialty_id))
        )
    if search:
        criteri.append(or_(Medico.nome.ilike(f"%{search}%"), Medico.crm.ilike(f"%{search}%")))

    with db_session() as s:
        dao = MedicoDAO(s)
        medici = dao.find_con_specialita(*criteri, skip=(page - 1) * limit, take=limit)
        totale = dao.count(*criteri)
        app_dao = AppuntamentoDAO(s)
        dati = []
        for m in medici:
            d = medico_flat(m)
            d["specialties"] = _specialita_di(m)
            d["appointmentCount"] = app_dao.count(medico_id=m.id)
            dati.append(d)
        return {"data": dati, "pagination": paginazione(page, limit, totale)}


def metriche_medici(start: datetime, end: datetime, search: str | None = None) -> dict[str, Any]:
    """Tutti i medici (anche senza atendimenti nel periodo), ordinati per fatturato."""
    criteri = [Medico.nome.ilike(f"%{search}%")] if search else []

    with db_session() as s:
        dao = MedicoDAO(s)
        medici = dao.find_con_specialita(*criteri)

        per_medico: dict[str, list[Appuntamento]] = {}
        for a in AppuntamentoDAO(s).find_many(criterio_periodo_fatturato(start, end), Appuntamento.medico_id.is_not(None)):
            per_medico.setdefault(a.medico_id, []).append(a)

        metriche = []
        for m in medici:
            appuntamenti = per_medico.get(m.id, [])
            fatturato = calcola_fatturato_totale(appuntamenti, start, end)
            incassato = fatturato
            n = len(appuntamenti)
            prod = dao.produttivita(m.id, start, end)
            metriche.append(
                {
                    "doctorId": m.id,
                    "name": m.nome,
                    "crm": m.crm,
                    "specialties": _specialita_di(m),
                    "appointmentCount": n,
                    "uniquePatients": len({a.paziente_id for a in appuntamenti}),
                    "totalRevenue": fatturato,
                    "receivedRevenue": incassato,
                    "pendingRevenue": fatturato - incassato,
                    "averageTicket": fatturato / n if n > 0 else 0,
                    "productivity": {
                        "appointmentsPerDay": prod["appointmentsPerDay"],
                        "totalDays": prod["days"],
                    },
                }
            )

    metriche.sort(key=lambda x: x["totalRevenue"], reverse=True)

    con_fatturato = [x for x in metriche if x["totalRevenue"] > 0]
    con_appuntamenti = [x for x in metriche if x["appointmentCount"] > 0]

    top_fatturato = con_fatturato[0] if con_fatturato else None
    top_appuntamenti = None
    for x in con_appuntamenti:
        # a parità vince l'ultimo
        if top_appuntamenti is None or not top_appuntamenti["appointmentCount"] > x["appointmentCount"]:
            top_appuntamenti = x

    def media(valori: list[float]) -> float:
        return sum(valori) / len(valori) if valori else 0

    return {
        "summary": {
            "totalDoctors": len(metriche),
            "avgRevenue": media([x["totalRevenue"] for x in con_fatturato]),
            "avgAppointments": media([x["appointmentCount"] for x in con_appuntamenti]),
            "avgTicket": media([x["averageTicket"] for x in con_appuntamenti]),
            "topByRevenue": (
                {
                    "doctorId": top_fatturato["doctorId"],
                    "name": top_fatturato["name"],
                    "totalRevenue": top_fatturato["totalRevenue"],
                }
                if top_fatturato
                else None
            ),
            "topByAppointments": (
                {
                    "doctorId": top_appuntamenti["doctorId"],
                    "name": top_appuntamenti["name"],
                    "appointmentCount": top_appuntamenti["appointmentCount"],
                }
                if top_appuntamenti
                else None
            ),
        },
        "doctors": metriche,
        "period": periodo(start, end),
    }


def dettaglio_medico(medico_id: str, start: datetime | None = None, end: datetime | None = None) -> dict[str, Any] | None:
    with db_session() as s:
        dao = MedicoDAO(s)
        m = dao.find_by_id(medico_id)
        if m is None:
            return None

        criteri: list[Any] = [Appuntamento.medico_id == medico_id]
        if start is not None or end is not None:
            su_data = [Appuntamento.data_appuntamento >= start] if start else []
            su_creazione = [Appuntamento.data_creazione >= start] if start else []
            if end is not None:
                su_data.append(Appuntamento.data_appuntamento <= end)
                su_creazione.append(Appuntamento.data_creazione <= end)
            criteri.append(or_(and_(*su_data), and_(*su_creazione)))

        appuntamenti = AppuntamentoDAO(s).find_many(
            *criteri,
            order_by=Appuntamento.data_appuntamento.desc(),
            opzioni=[
                selectinload(Appuntamento.paziente),
                selectinload(Appuntamento.procedure).selectinload(AppuntamentoProcedura.procedura),
            ],
        )

        fatturato = calcola_fatturato_totale(appuntamenti, start or INIZIO_STORICO, end or FINE_STORICO)
        n = len(appuntamenti)

        per_procedura: dict[str, dict[str, Any]] = {}
        for a in appuntamenti:
            for ap in a.procedure:
                p = ap.procedura
                st = per_procedura.setdefault(p.id, {"name": p.nome, "code": p.codice, "count": 0, "revenue": 0.0})
                st["count"] += 1
                st["revenue"] += float(p.prezzo_base or 0)

        d = medico_flat(m)
        d["specialties"] = [{"id": sp.id, "name": sp.nome} for sp in SpecialitaDAO(s).find_by_medico(medico_id)]
        return {
            "doctor": d,
            "metrics": {
                "totalRevenue": fatturato,
                "totalAppointments": n,
                "averageTicket": fatturato / n if n > 0 else 0,
                "returnRate": dao.tasso_ritorno_medico(medico_id)["returnRate"],
            },
            "appointments": [
                {
                    "id": a.id,
                    "appointmentDate": a.data_appuntamento,
                    "appointmentTime": a.ora_appuntamento,
                    "createdDate": a.data_creazione,
                    "status": a.stato,
                    "examValue": a.valore_esame,
                    "paidValue": a.valore_pagato,
                    "paymentDone": a.pagato,
                    "insuranceName": a.convenzione,
                    "patient": (
                        {"id": a.paziente.id, "fullName": a.paziente.nome_completo, "cpf": a.paziente.cpf}
                        if a.paziente
                        else None
                    ),
                    "procedures": procedure_di(a),
                    "examsRaw": a.esami_raw,
                }
                for a in appuntamenti
            ],
            "proceduresByRevenue": sorted(per_procedura.values(), key=lambda x: x["revenue"], reverse=True),
            "period": periodo(start, end),
        }
