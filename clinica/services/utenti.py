from __future__ import annotations

from typing import Any

from sqlalchemy.orm import selectinload

from clinica.auth_models import RuoloUtente, Utente
from clinica.auth_security import hash_password
from clinica.auth_service import utente_flat
from clinica.dao import AppuntamentoDAO, UtenteDAO
from clinica.db import db_session
from clinica.models import Appuntamento


def lista_utenti() -> dict[str, Any]:
    """Utenti attivi (più recenti prima) con un riepilogo per ruolo."""
    with db_session() as s:
        utenti = UtenteDAO(s).find_many(attivo=True, order_by=Utente.created_at.desc())

        summary = {
            "totalUsers": len(utenti),
            "adminCount": sum(1 for u in utenti if u.ruolo == RuoloUtente.ADMIN),
            "managerCount": sum(1 for u in utenti if u.ruolo == RuoloUtente.MANAGER),
            "viewerCount": sum(1 for u in utenti if u.ruolo == RuoloUtente.VIEWER),
        }
        return {"summary": summary, "users": [utente_flat(u) for u in utenti]}


def dettaglio_utente(user_id: str) -> dict[str, Any] | None:
    with db_session() as s:
        u = UtenteDAO(s).find_by_id(user_id)
        if u is None:
            return None

        appuntamenti = AppuntamentoDAO(s).find_many(
            responsabile_id=user_id,
            order_by=Appuntamento.data_appuntamento.desc(),
            opzioni=[selectinload(Appuntamento.paziente), selectinload(Appuntamento.medico)],
        )

        def valore(a: Appuntamento) -> float:
            return float(a.valore_pagato or a.valore_esame or 0)

        per_mese: dict[str, dict[str, Any]] = {}
        per_paziente: dict[str, dict[str, Any]] = {}
        for a in appuntamenti:
            chiave = a.data_appuntamento.strftime("%Y-%m")
            m = per_mese.setdefault(chiave, {"month": chiave, "count": 0, "sales": 0.0})
            m["count"] += 1
            m["sales"] += valore(a)

            if a.paziente is not None:
                p = per_paziente.setdefault(
                    a.paziente.id,
                    {"patientId": a.paziente.id, "patientName": a.paziente.nome_completo, "count": 0, "totalValue": 0.0},
                )
                p["count"] += 1
                p["totalValue"] += valore(a)

        recenti = [
            {
                "id": a.id,
                "externalId": a.external_id,
                "appointmentDate": a.data_appuntamento,
                "appointmentTime": a.ora_appuntamento,
                "paidValue": a.valore_pagato,
                "examValue": a.valore_esame,
                "paymentDone": a.pagato,
                "insuranceName": a.convenzione,
                "patient": {"id": a.paziente.id, "fullName": a.paziente.nome_completo} if a.paziente else None,
                "doctor": {"id": a.medico.id, "name": a.medico.nome} if a.medico else None,
            }
            for a in appuntamenti[:10]
        ]

        return {
            "user": utente_flat(u),
            "metrics": {
                "totalAppointments": len(appuntamenti),
                "totalSales": sum(valore(a) for a in appuntamenti),
                "completedAppointments": sum(1 for a in appuntamenti if a.pagato),
                "pendingAppointments": sum(1 for a in appuntamenti if not a.pagato),
            },
            "monthlyStats": sorted(per_mese.values(), key=lambda m: m["month"], reverse=True),
            "topPatients": sorted(per_paziente.values(), key=lambda p: p["count"], reverse=True)[:5],
            "recentAppointments": recenti,
        }


def aggiorna_utente(user_id: str, dati: dict[str, Any]) -> dict[str, Any] | None:
    """
    Aggiornamento parziale. Solleva ValueError se la nuova email è già usata.
    Ritorna None se l'utente non esiste.
    """
    with db_session() as s:
        dao = UtenteDAO(s)
        u = dao.find_by_id(user_id)
        if u is None:
            return None

        modifiche: dict[str, Any] = {}
        email = dati.get("email")
        if email:
            email = email.strip().lower()
            if email != u.email:
                if dao.exists_by_email(email):
                    raise ValueError("User with this email already exists")
                modifiche["email"] = email
        if dati.get("name"):
            modifiche["nome"] = dati["name"]
        if dati.get("role"):
            modifiche["ruolo"] = RuoloUtente(dati["role"])
        if dati.get("active") is not None:
            modifiche["attivo"] = dati["active"]
        if "phone" in dati and dati["phone"] is not None:
            modifiche["telefono"] = dati["phone"]
        if dati.get("password"):
            modifiche["password_hash"] = hash_password(dati["password"])

        u = dao.update_one(user_id, modifiche)
        return utente_flat(u)


def elimina_utente(user_id: str, richiedente_id: str) -> bool:
    """
    Ritorna False se l'utente non esiste.
    Solleva ValueError se si tenta di eliminare il proprio account.
    """
    with db_session() as s:
        dao = UtenteDAO(s)
        if dao.find_by_id(user_id) is None:
            return False
        if user_id == richiedente_id:
            raise ValueError("You cannot delete your own account")
        return dao.delete_one(user_id)

