from __future__ import annotations

from datetime import datetime
from typing import Any

from clinica.dao import AppuntamentoDAO, MedicoDAO, PazienteDAO, ProceduraDAO
from clinica.db import db_session
from clinica.models import Medico, Procedura

from .comuni import periodo


def metriche_dashboard(start: datetime, end: datetime) -> dict[str, Any]:
    """Riepilogo per la home: finanze, medici, pazienti e procedure del periodo."""
    with db_session() as s:
        app_dao = AppuntamentoDAO(s)
        medico_dao = MedicoDAO(s)
        paziente_dao = PazienteDAO(s)
        procedura_dao = ProceduraDAO(s)

        fin = app_dao.metriche_finanziarie(start, end)
        totale = fin["somma_esame"]
        ricevuto = fin["somma_pagato"]
        n = fin["count"]

        pagamenti = app_dao.stato_pagamenti(start, end)
        pagati = next((p["count"] for p in pagamenti if p["pagato"]), 0)

        top = medico_dao.top_per_fatturato(start, end, 3)
        medici = {m.id: m for m in medico_dao.find_many(Medico.id.in_([t["medico_id"] for t in top]))} if top else {}
        top_medici = []
        for t in top:
            m = medici.get(t["medico_id"])
            top_medici.append(
                {
                    "doctorId": t["medico_id"],
                    "name": m.nome if m else "Desconhecido",
                    "crm": m.crm if m else None,
                    "totalRevenue": t["somma_esame"],
                    "returnRate": medico_dao.tasso_ritorno_medico(t["medico_id"])["returnRate"],
                }
            )

        miglior_ritorno = None
        for d in top_medici:
            if miglior_ritorno is None or not miglior_ritorno["returnRate"] > d["returnRate"]:
                miglior_ritorno = d

        segmentazione = paziente_dao.segmentazione(start, end)

        top_proc = procedura_dao.piu_vendute(start, end, 3)
        ids = [t["procedura_id"] for t in top_proc]
        procedure = {p.id: p for p in procedura_dao.find_many(Procedura.id.in_(ids))} if ids else {}

        return {
            "financial": {
                "totalRevenue": totale,
                "receivedRevenue": ricevuto,
                "pendingRevenue": totale - ricevuto,
                "averageTicket": fin["media_esame"],
                "paymentRate": (pagati / n) * 100 if n > 0 else 0,
                "totalAppointments": n,
            },
            "doctors": {
                "total": medico_dao.count(),
                "topByRevenue": [{k: v for k, v in d.items() if k != "returnRate"} for d in top_medici],
                "bestReturnRate": (
                    {
                        "doctorId": miglior_ritorno["doctorId"],
                        "name": miglior_ritorno["name"],
                        "returnRate": miglior_ritorno["returnRate"],
                    }
                    if miglior_ritorno
                    else None
                ),
            },
            "patients": {
                "total": paziente_dao.count(),
                "newPatients": paziente_dao.nuovi_pazienti(start, end),
                "recurringPatients": sum(1 for p in segmentazione if p["isRecurring"]),
                "returnRate": paziente_dao.tasso_ritorno()["returnRate"],
            },
            "procedures": {
                "total": procedura_dao.count(),
                "topSelling": [
                    {
                        "procedureId": t["procedura_id"],
                        "name": procedure[t["procedura_id"]].nome if t["procedura_id"] in procedure else "Desconhecido",
                        "code": procedure[t["procedura_id"]].codice if t["procedura_id"] in procedure else None,
                        "quantitySold": t["quantita"],
                        "timesOrdered": t["volte"],
                        "totalRevenue": t["totale"],
                    }
                    for t in top_proc
                ],
            },
            "period": periodo(start, end),
        }
