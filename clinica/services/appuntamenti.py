from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.orm import selectinload

from clinica.dao import AppuntamentoDAO, MedicoDAO
from clinica.db import db_session
from clinica.fatturato import calcola_fatturato_totale, criterio_periodo_fatturato, filtra_per_fatturato
from clinica.models import Appuntamento, AppuntamentoProcedura, Medico, Paziente

from .comuni import appuntamento_flat, paginazione, periodo


def opzioni_appuntamento() -> list[Any]:
    return [
        selectinload(Appuntamento.paziente),
        selectinload(Appuntamento.medico),
        selectinload(Appuntamento.specialita),
        selectinload(Appuntamento.procedure).selectinload(AppuntamentoProcedura.procedura),
    ]


def _filtri(
    start: datetime | None,
    end: datetime | None,
    *,
    search: str | None = None,
    doctor_id: str | None = None,
    patient_id: str | None = None,
    specialty_id: str | None = None,
    insurance_name: str | None = None,
    payment_done: bool | None = None,
) -> list[Any]:
    criteri: list[Any] = []
    if start is not None:
        criteri.append(Appuntamento.data_appuntamento >= start)
    if end is not None:
        criteri.append(Appuntamento.data_appuntamento <= end)
    if doctor_id:
        criteri.append(Appuntamento.medico_id == doctor_id)
    if patient_id:
        criteri.append(Appuntamento.paziente_id == patient_id)
    if specialty_id:
        criteri.append(Appuntamento.specialita_id == specialty_id)
    if insurance_name:
        criteri.append(Appuntamento.convenzione == insurance_name)
    if payment_done is not None:
        criteri.append(Appuntamento.pagato.is_(payment_done))
    if search:
        like = f"%{search}%"
        criteri.append(
            or_(
                Appuntamento.paziente_id.in_(select(Paziente.id).where(Paziente.nome_completo.ilike(like))),
                Appuntamento.medico_id.in_(select(Medico.id).where(Medico.nome.ilike(like))),
                Appuntamento.convenzione.ilike(like),
            )
        )
    return criteri


def lista_appuntamenti(
    page: int = 1,
    limit: int = 10,
    start: datetime | None = None,
    end: datetime | None = None,
    **filtri: Any,
) -> dict[str, Any]:
    criteri = _filtri(start, end, **filtri)
    with db_session() as s:
        dao = AppuntamentoDAO(s)
        appuntamenti = dao.find_many(
            *criteri,
            order_by=Appuntamento.data_appuntamento.desc(),
            skip=(page - 1) * limit,
            take=limit,
            opzioni=opzioni_appuntamento(),
        )
        totale = dao.count(*criteri)
        return {
            "data": [appuntamento_flat(a) for a in appuntamenti],
            "pagination": paginazione(page, limit, totale),
        }


def metriche_appuntamenti(
    start: datetime,
    end: datetime,
    page: int = 1,
    limit: int = 100,
    **filtri: Any,
) -> dict[str, Any]:
    criteri = _filtri(start, end, **filtri)

    with db_session() as s:
        dao = AppuntamentoDAO(s)
        appuntamenti = dao.find_many(
            *criteri,
            order_by=Appuntamento.data_appuntamento.desc(),
            skip=(page - 1) * limit,
            take=limit,
            opzioni=opzioni_appuntamento(),
        )
        totale = dao.count(*criteri)

        # fatturato: data_appuntamento OR data_creazione nel periodo
        per_fatturato = dao.find_many(criterio_periodo_fatturato(start, end))
        fatturato = calcola_fatturato_totale(per_fatturato, start, end)
        inclusi = len(filtra_per_fatturato(per_fatturato, start, end))

        medici = {m.id: m for m in MedicoDAO(s).find_many()}
        per_medico = []
        for item in dao.per_medico(start, end):
            m = medici.get(item["medico_id"])
            per_medico.append(
                {
                    "doctorId": item["medico_id"],
                    "name": m.nome if m else "Desconhecido",
                    "crm": m.crm if m else None,
                    "appointmentCount": item["count"],
                    "totalRevenue": item["somma_pagato"],
                    "averageTicket": item["media_esame"],
                }
            )

        serie = [
            {
                "period": g["period"],
                "appointmentCount": g["count"],
                "revenue": g["revenue"],
                "received": g["received"],
            }
            for g in dao.serie_temporale(start, end)
        ]

        return {
            "summary": {
                "totalAppointments": inclusi,
                "totalRevenue": fatturato,
                "averageTicket": fatturato / inclusi if inclusi > 0 else 0,
                "todayAppointments": dao.appuntamenti_oggi(),
                "weekAppointments": dao.appuntamenti_settimana(),
            },
            "byDoctor": per_medico,
            "byInsurance": [
                {
                    "insuranceName": c["convenzione"],
                    "appointmentCount": c["count"],
                    "totalRevenue": c["somma_esame"],
                    "receivedRevenue": c["somma_pagato"],
                }
                for c in dao.per_convenzione(start, end)
            ],
            "timeSeries": serie,
            "appointments": [appuntamento_flat(a) for a in appuntamenti],
            "pagination": paginazione(page, limit, totale),
            "period": periodo(start, end),
        }


def dettaglio_appuntamento(appuntamento_id: str) -> dict[str, Any] | None:
    with db_session() as s:
        app = AppuntamentoDAO(s).find_by_id(
            appuntamento_id,
            opzioni=opzioni_appuntamento() + [selectinload(Appuntamento.responsabile)],
        )
        if app is None:
            return None

        d = appuntamento_flat(app, con_procedure=False)
        if app.paziente is not None:
            d["patient"].update(
                {
                    "identityNumber": app.paziente.documento,
                    "homePhone": app.paziente.telefono_casa,
                    "mobilePhone": app.paziente.cellulare,
                }
            )
        r = app.responsabile
        d["responsibleUser"] = {"id": r.id, "name": r.nome, "email": r.email} if r else None
        d["appointmentProcedures"] = [
            {
                "id": ap.id,
                "quantity": ap.quantita,
                "unitPrice": ap.prezzo_unitario,
                "totalPrice": ap.prezzo_totale,
                "procedure": {
                    "id": ap.procedura.id,
                    "name": ap.procedura.nome,
                    "code": ap.procedura.codice,
                    "defaultPrice": ap.procedura.prezzo_base,
                },
            }
            for ap in app.procedure
        ]
        return d
