"""
Conversioni 'flat' (dict serializzabili) condivise dai servizi.
Le chiavi seguono il contratto JSON del frontend (camelCase).
"""
from __future__ import annotations

import math
from typing import Any

from clinica.models import Appuntamento, Medico, Paziente, Procedura, Specialita


def paziente_breve(p: Paziente | None) -> dict[str, Any] | None:
    if p is None:
        return None
    return {"id": p.id, "fullName": p.nome_completo, "cpf": p.cpf, "insuranceName": p.convenzione}


def paziente_flat(p: Paziente) -> dict[str, Any]:
    return {
        "id": p.id,
        "externalId": p.external_id,
        "sourceSystem": p.source_system,
        "fullName": p.nome_completo,
        "motherName": p.nome_madre,
        "identityNumber": p.documento,
        "cpf": p.cpf,
        "homePhone": p.telefono_casa,
        "mobilePhone": p.cellulare,
        "insuranceName": p.convenzione,
        "syncedAt": p.synced_at,
        "createdAt": p.created_at,
    }


def medico_breve(m: Medico | None) -> dict[str, Any] | None:
    if m is None:
        return None
    return {"id": m.id, "name": m.nome, "crm": m.crm}


def medico_flat(m: Medico) -> dict[str, Any]:
    return {
        "id": m.id,
        "externalId": m.external_id,
        "sourceSystem": m.source_system,
        "name": m.nome,
        "crm": m.crm,
        "homePhone": m.telefono_casa,
        "workPhone": m.telefono_ufficio,
        "mobilePhone": m.cellulare,
        "syncedAt": m.synced_at,
        "createdAt": m.created_at,
    }


def specialita_breve(s: Specialita | None) -> dict[str, Any] | None:
    if s is None:
        return None
    return {"id": s.id, "name": s.nome}


def procedura_flat(p: Procedura) -> dict[str, Any]:
    return {
        "id": p.id,
        "externalId": p.external_id,
        "name": p.nome,
        "code": p.codice,
        "defaultPrice": p.prezzo_base,
        "ch": p.ch,
        "specialtyName": p.nome_specialita,
        "specialtyId": p.specialita_id,
    }


def procedure_di(app: Appuntamento) -> list[dict[str, Any]]:
    return [
        {"id": ap.procedura.id, "name": ap.procedura.nome, "code": ap.procedura.codice, "quantity": ap.quantita}
        for ap in app.procedure
    ]


def appuntamento_flat(app: Appuntamento, *, con_procedure: bool = True) -> dict[str, Any]:
    d: dict[str, Any] = {
        "id": app.id,
        "externalId": app.external_id,
        "appointmentDate": app.data_appuntamento,
        "appointmentTime": app.ora_appuntamento,
        "appointmentAt": app.data_ora,
        "createdDate": app.data_creazione,
        "insuranceName": app.convenzione,
        "status": app.stato,
        "examsRaw": app.esami_raw,
        "examValue": app.valore_esame if app.valore_esame else None,
        "paidValue": app.valore_pagato if app.valore_pagato else None,
        "paymentDone": app.pagato,
        "patient": paziente_breve(app.paziente),
        "doctor": medico_breve(app.medico),
        "specialty": specialita_breve(app.specialita),
    }
    if con_procedure:
        d["procedures"] = procedure_di(app)
    return d


def paginazione(page: int, limit: int, total: int) -> dict[str, int]:
    return {"page": page, "limit": limit, "total": total, "totalPages": math.ceil(total / limit) if limit else 0}


def periodo(start: Any, end: Any) -> dict[str, Any]:
    return {"startDate": start, "endDate": end}
