from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any

from lxml import html as lxml_html
from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import selectinload

from clinica.config import SOURCE_SYSTEM
from clinica.dao import PazienteDAO
from clinica.db import db_session
from clinica.etl.client import ENDPOINT_COMPLEANNI, S2webClient
from clinica.models import Appuntamento, AppuntamentoProcedura, Paziente

from .comuni import paginazione, paziente_flat, periodo


def _cerca(search: str | None) -> list[Any]:
    if not search:
        return []
    like = f"%{search}%"
    return [or_(Paziente.nome_completo.ilike(like), Paziente.cpf.ilike(like), Paziente.cellulare.ilike(like))]


def lista_pazienti(page: int = 1, limit: int = 10, search: str | None = None) -> dict[str, Any]:
    criteri = _cerca(search)
    with db_session() as s:
        dao = PazienteDAO(s)
        pazienti = dao.find_many(*criteri, order_by=Paziente.nome_completo, skip=(page - 1) * limit, take=limit)
        totale = dao.count(*criteri)

        ids = [p.id for p in pazienti]
        stats = {
            pid: (n, ultima)
            for pid, n, ultima in s.execute(
                select(Appuntamento.paziente_id, func.count(Appuntamento.id), func.max(Appuntamento.data_appuntamento))
                .where(Appuntamento.paziente_id.in_(ids))
                .group_by(Appuntamento.paziente_id)
            )
        }
        dati = []
        for p in pazienti:
            n, ultima = stats.get(p.id, (0, None))
            d = paziente_flat(p)
            d["appointmentCount"] = n
            d["lastAppointmentDate"] = ultima
            dati.append(d)
        return {"data": dati, "pagination": paginazione(page, limit, totale)}


def metriche_pazienti(
    start: datetime,
    end: datetime,
    page: int = 1,
    limit: int = 100,
    search: str | None = None,
    min_spent: float | None = None,
    max_spent: float | None = None,
    ultimo_da: datetime | None = None,
    ultimo_a: datetime | None = None,
) -> dict[str, Any]:
    with db_session() as s:
        dao = PazienteDAO(s)
        segmentazione = dao.segmentazione(start, end)
        a_rischio = dao.pazienti_a_rischio(3)

        ricorrenti = sum(1 for p in segmentazione if p["isRecurring"])
        nuovi = sum(1 for p in segmentazione if p["isNew"])
        segmentati = len(segmentazione)
        tasso_ritorno = dao.tasso_ritorno()["returnRate"]

        # VIP: top 20 per valore pagato nel periodo
        speso = func.coalesce(func.sum(Appuntamento.valore_pagato), 0)
        vip_q = (
            select(
                Paziente.id,
                Paziente.nome_completo,
                Paziente.cpf,
                speso.label("speso"),
                func.count(Appuntamento.id),
                func.max(Appuntamento.data_appuntamento),
            )
            .join(Appuntamento, Appuntamento.paziente_id == Paziente.id)
            .where(Appuntamento.data_appuntamento >= start, Appuntamento.data_appuntamento <= end)
            .group_by(Paziente.id, Paziente.nome_completo, Paziente.cpf)
            .order_by(speso.desc())
            .limit(20)
        )
        vip = [
            {
                "patientId": pid,
                "fullName": nome,
                "cpf": cpf,
                "totalSpent": float(tot or 0),
                "appointmentCount": int(n or 0),
                "lastAppointmentDate": ultima,
            }
            for pid, nome, cpf, tot, n, ultima in s.execute(vip_q)
        ]

        # elenco pazienti con metriche nel periodo (LEFT JOIN: anche chi non ha atendimenti)
        ultima = func.max(Appuntamento.data_appuntamento)
        base = (
            select(
                Paziente.id.label("id"),
                Paziente.nome_completo.label("nome"),
                Paziente.cpf.label("cpf"),
                Paziente.cellulare.label("cellulare"),
                Paziente.telefono_casa.label("telefono_casa"),
                speso.label("speso"),
                func.count(Appuntamento.id).label("n"),
                ultima.label("ultima"),
            )
            .outerjoin(
                Appuntamento,
                and_(
                    Appuntamento.paziente_id == Paziente.id,
                    Appuntamento.data_appuntamento >= start,
                    Appuntamento.data_appuntamento <= end,
                ),
            )
            .where(*_cerca(search))
            .group_by(Paziente.id, Paziente.nome_completo, Paziente.cpf, Paziente.cellulare, Paziente.telefono_casa)
        )
        having = []
        if min_spent is not None:
            having.append(speso >= min_spent)
        if max_spent is not None:
            having.append(speso <= max_spent)
        if having:
            base = base.having(*having)

        sub = base.subquery()
        filtri_ultima = []
        if ultimo_da is not None:
            filtri_ultima.append(sub.c.ultima >= ultimo_da)
        if ultimo_a is not None:
            filtri_ultima.append(sub.c.ultima <= ultimo_a)

        totale = int(s.scalar(select(func.count()).select_from(sub).where(*filtri_ultima)) or 0)
        righe = s.execute(
            select(sub)
            .where(*filtri_ultima)
            .order_by(sub.c.ultima.is_(None), sub.c.ultima.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        ).mappings()
        pazienti = [
            {
                "id": r["id"],
                "fullName": r["nome"],
                "cpf": r["cpf"],
                "phone": r["cellulare"] or r["telefono_casa"],
                "totalSpent": float(r["speso"] or 0),
                "appointmentCount": int(r["n"] or 0),
                "lastAppointmentDate": r["ultima"],
            }
            for r in righe
        ]

    return {
        "summary": {
            "totalPatients": totale,
            "newPatients": nuovi,
            "recurringPatients": ricorrenti,
            "returnRate": tasso_ritorno,
            "averageLTV": sum(p["totalSpent"] for p in segmentazione) / segmentati if segmentati > 0 else 0,
            "vipPatientsCount": len(vip),
            "patientsAtRiskCount": len(a_rischio),
            "churnRate": (len(a_rischio) / segmentati) * 100 if segmentati > 0 else 0,
        },
        "segmentation": {
            "newPatients": nuovi,
            "recurringPatients": ricorrenti,
            "vipPatients": len(vip),
            "atRisk": len(a_rischio),
        },
        "ltvDistribution": {
            "low": sum(1 for p in segmentazione if p["totalSpent"] < 500),
            "medium": sum(1 for p in segmentazione if 500 <= p["totalSpent"] < 2000),
            "high": sum(1 for p in segmentazione if p["totalSpent"] >= 2000),
        },
        "vipPatients": vip,
        "patientsAtRisk": a_rischio[:10],
        "patients": pazienti,
        "pagination": paginazione(page, limit, totale),
        "period": periodo(start, end),
    }


def pazienti_inattivi(mesi: int = 3, medico_id: str | None = None, procedura_id: str | None = None) -> dict[str, Any]:
    if mesi < 1:
        raise ValueError('Parâmetro "months" deve ser um número maior que 0')
    with db_session() as s:
        inattivi = PazienteDAO(s).pazienti_a_rischio(mesi, medico_id, procedura_id)
    return {"inactivePatients": inattivi, "totalInactive": len(inattivi), "monthsThreshold": mesi}


def dettaglio_paziente(paziente_id: str) -> dict[str, Any] | None:
    with db_session() as s:
        p = PazienteDAO(s).find_by_id(
            paziente_id,
            opzioni=[
                selectinload(Paziente.appuntamenti).selectinload(Appuntamento.medico),
                selectinload(Paziente.appuntamenti).selectinload(Appuntamento.specialita),
                selectinload(Paziente.appuntamenti)
                .selectinload(Appuntamento.procedure)
                .selectinload(AppuntamentoProcedura.procedura),
            ],
        )
        if p is None:
            return None

        appuntamenti = sorted(p.appuntamenti, key=lambda a: a.data_appuntamento, reverse=True)
        speso = sum(float(a.valore_esame or 0) for a in appuntamenti)
        pagato = sum(float(a.valore_pagato or 0) for a in appuntamenti)
        n = len(appuntamenti)

        d = paziente_flat(p)
        d["appointments"] = [
            {
                "id": a.id,
                "externalId": a.external_id,
                "appointmentDate": a.data_appuntamento,
                "appointmentTime": a.ora_appuntamento,
                "status": a.stato,
                "insuranceName": a.convenzione,
                "examValue": a.valore_esame,
                "paidValue": a.valore_pagato,
                "paymentDone": a.pagato,
                "examsRaw": a.esami_raw,
                "doctor": {"id": a.medico.id, "name": a.medico.nome, "crm": a.medico.crm} if a.medico else None,
                "specialty": (
                    {"id": a.specialita.id, "name": a.specialita.nome, "acronym": a.specialita.sigla}
                    if a.specialita
                    else None
                ),
                "appointmentProcedures": [
                    {
                        "id": ap.id,
                        "quantity": ap.quantita,
                        "procedure": {"id": ap.procedura.id, "name": ap.procedura.nome, "code": ap.procedura.codice},
                    }
                    for ap in a.procedure
                ],
            }
            for a in appuntamenti
        ]
        d["metrics"] = {
            "appointmentCount": n,
            "totalSpent": speso,
            "totalPaid": pagato,
            "pendingAmount": speso - pagato,
            "averageTicket": speso / n if n > 0 else 0,
        }
        return d


# =========================
# Aniversariantes (s2web)
# =========================
def parse_compleanni(testo_html: str) -> list[dict[str, str]]:
    """Righe della tabella aniversariantes: solo le <tr> con almeno 10 celle."""
    if not testo_html or not testo_html.strip():
        return []
    doc = lxml_html.fromstring(testo_html)
    risultato = []
    for tr in doc.xpath("//tbody/tr"):
        tds = tr.xpath("./td")
        if len(tds) < 10:
            continue
        testo = [td.text_content().strip() for td in tds]
        mailto = tds[7].xpath(".//a/@href")
        risultato.append(
            {
                "externalId": testo[0],
                "day": testo[1],
                "name": testo[2],
                "birthDate": testo[3],
                "age": testo[4],
                "lastAppointment": testo[5],
                "daysSinceLastAppointment": testo[6],
                "email": mailto[0].replace("mailto:", "") if mailto else "",
                "phone": testo[8],
            }
        )
    return risultato


def compleanni(giorno: date | None = None, client: S2webClient | None = None) -> dict[str, Any]:
    giorno = giorno or date.today()
    client = client or S2webClient()

    testo = client.html(
        ENDPOINT_COMPLEANNI,
        {
            "mes_nascimento": str(giorno.month),
            "dia_inicio": "",
            "mes_inicio": "",
            "dia_termino": "",
            "mes_termino": "",
            "excel": "0",
        },
    )
    del_giorno = [b for b in parse_compleanni(testo) if b["day"] == str(giorno.day)]

    arricchiti = []
    with db_session() as s:
        dao = PazienteDAO(s)
        for b in del_giorno:
            p = dao.find_one(external_id=b["externalId"], source_system=SOURCE_SYSTEM)
            cifre = re.sub(r"\D", "", b["phone"] or "")
            if p is None and cifre:
                p = dao.find_one(
                    or_(Paziente.cellulare.contains(cifre), Paziente.telefono_casa.contains(cifre))
                )
            arricchiti.append(
                {
                    **b,
                    "patientId": p.id if p else None,
                    "patientData": (
                        {
                            "id": p.id,
                            "fullName": p.nome_completo,
                            "cpf": p.cpf,
                            "mobilePhone": p.cellulare,
                            "homePhone": p.telefono_casa,
                        }
                        if p
                        else None
                    ),
                }
            )

    return {
        "date": giorno.isoformat(),
        "day": giorno.day,
        "month": giorno.month,
        "total": len(arricchiti),
        "birthdays": arricchiti,
    }
