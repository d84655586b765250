"""Endpoint di metriche e dettaglio: atendimenti, medici, pazienti, procedure, specialità."""
from __future__ import annotations

import uuid
from datetime import date, datetime
from types import SimpleNamespace
from unittest import mock

import pytest

from clinica.etl.client import S2webError
from clinica.models import STATO_PRE_PAGATO_ATTESO
from clinica.services.pazienti import compleanni, parse_compleanni

from conftest import crea_appuntamento, crea_medico, crea_paziente, crea_procedura, crea_specialita

GENNAIO = {"startDate": "2025-01-01", "endDate": "2025-01-31"}


@pytest.fixture
def scenario():
    """
    Gennaio 2025, due medici e due pazienti:
    - a1: Carla / Dr. Ana, 200 pagato, UNIMED, con ECG
    - a2: Davi / Dr. Ana, 100 non pagato, PARTICULAR
    - a3: Carla / Dr. Bruno, 300 pré-pago registrato a dicembre (fuori dal fatturato di gennaio)
    - a4: Carla / Dr. Bruno, 50 pagato a dicembre 2024
    """
    cardio = crea_specialita("CARDIOLOGIA")
    ana = crea_medico("Dr. Ana", "111", specialita=[cardio])
    bruno = crea_medico("Dr. Bruno", "222")
    carla = crea_paziente("Carla Dias", cpf="11122233344", cellulare="11987654321")
    davi = crea_paziente("Davi Lima", telefono_casa="1133334444")
    ecg = crea_procedura("ELETROCARDIOGRAMA", "ECG", 100.0)
    holter = crea_procedura("HOLTER", "HOL", 250.0)

    a1 = crea_appuntamento(datetime(2025, 1, 10), carla, ana, 200.0, 200.0, procedure=[ecg, holter],
                           convenzione="UNIMED", specialita_id=cardio.id)
    a2 = crea_appuntamento(datetime(2025, 1, 15), davi, ana, 100.0, convenzione="PARTICULAR")
    a3 = crea_appuntamento(datetime(2025, 1, 20), carla, bruno, 300.0, 300.0, procedure=[ecg],
                           stato=STATO_PRE_PAGATO_ATTESO, data_creazione=datetime(2024, 12, 28))
    a4 = crea_appuntamento(datetime(2024, 12, 5), carla, bruno, 50.0, 50.0)
    return SimpleNamespace(
        cardio=cardio, ana=ana, bruno=bruno, carla=carla, davi=davi, ecg=ecg, holter=holter,
        a1=a1, a2=a2, a3=a3, a4=a4,
    )


class TestPeriodoObbligatorio:
    @pytest.mark.parametrize(
        "url",
        [
            "/appointments/metrics/summary",
            "/doctors/metrics/summary",
            "/patients/metrics/summary",
            "/procedures/metrics/summary",
            "/dashboard/metrics",
            "/financial/metrics",
        ],
    )
    def test_senza_date_400(self, client, admin_headers, url):
        response = client.get(url, params={"endDate": "2025-01-31"}, headers=admin_headers)

        assert response.status_code == 400
        assert response.json() == {"message": "startDate is required"}

    def test_data_non_valida_400(self, client, admin_headers):
        response = client.get(
            "/appointments/metrics/summary",
            params={"startDate": "2025-01-01", "endDate": "ieri"},
            headers=admin_headers,
        )
        assert response.status_code == 400
        assert "Invalid endDate format" in response.json()["message"]

    def test_richiede_autenticazione(self, client):
        assert client.get("/appointments/metrics/summary", params=GENNAIO).status_code == 401


class _Mercoledi15Gennaio(date):
    @classmethod
    def today(cls):
        return cls(2025, 1, 15)


class TestAppuntamenti:
    def test_riepilogo_applica_regola_fatturato(self, client, admin_headers, scenario):
        response = client.get("/appointments/metrics/summary", params=GENNAIO, headers=admin_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        summary = data["summary"]
        # a3 è pré-pago registrato a dicembre: escluso
        assert summary["totalAppointments"] == 2
        assert summary["totalRevenue"] == 200.0
        assert summary["averageTicket"] == 100.0
        assert summary["todayAppointments"] == 0

        assert data["pagination"] == {"page": 1, "limit": 100, "total": 3, "totalPages": 1}
        assert [a["id"] for a in data["appointments"]] == [scenario.a3.id, scenario.a2.id, scenario.a1.id]

    def test_oggi_e_settimana_da_domenica(self, client, admin_headers, scenario, monkeypatch):
        monkeypatch.setattr("clinica.periodi.date", _Mercoledi15Gennaio)
        crea_appuntamento(datetime(2025, 1, 15, 17, 30))
        crea_appuntamento(datetime(2025, 1, 12, 8, 0))
        crea_appuntamento(datetime(2025, 1, 11, 23, 0))
        crea_appuntamento(datetime(2025, 1, 19, 9, 0))

        summary = client.get("/appointments/metrics/summary", params=GENNAIO, headers=admin_headers).json()[
            "data"
        ]["summary"]

        # oggi: a2 (15/01 00:00) e quello delle 17:30
        assert summary["todayAppointments"] == 2
        # domenica 12 .. sabato 18: esclusi sabato 11 e domenica 19
        assert summary["weekAppointments"] == 3

    def test_raggruppamenti(self, client, admin_headers, scenario):
        data = client.get("/appointments/metrics/summary", params=GENNAIO, headers=admin_headers).json()["data"]

        per_medico = {d["doctorId"]: d for d in data["byDoctor"]}
        assert per_medico[scenario.ana.id]["appointmentCount"] == 2
        assert per_medico[scenario.ana.id]["totalRevenue"] == 200.0
        assert per_medico[scenario.ana.id]["averageTicket"] == 150.0
        assert per_medico[scenario.bruno.id]["name"] == "Dr. Bruno"

        assert data["byInsurance"] == [
            {"insuranceName": "PARTICULAR", "appointmentCount": 1, "totalRevenue": 100.0, "receivedRevenue": 0.0},
            {"insuranceName": "UNIMED", "appointmentCount": 1, "totalRevenue": 200.0, "receivedRevenue": 200.0},
        ]

        assert len(data["timeSeries"]) == 1
        mese = data["timeSeries"][0]
        assert mese["period"].startswith("2025-01-01")
        assert (mese["appointmentCount"], mese["revenue"], mese["received"]) == (3, 600.0, 500.0)

    def test_filtri_e_ricerca(self, client, admin_headers, scenario):
        per_medico = client.get(
            "/appointments/metrics/summary", params={**GENNAIO, "doctorId": scenario.bruno.id}, headers=admin_headers
        ).json()["data"]
        assert [a["id"] for a in per_medico["appointments"]] == [scenario.a3.id]

        per_nome = client.get(
            "/appointments/metrics/summary", params={**GENNAIO, "search": "carla"}, headers=admin_headers
        ).json()["data"]
        assert per_nome["pagination"]["total"] == 2

    def test_procedure_negli_atendimenti(self, client, admin_headers, scenario):
        data = client.get("/appointments/metrics/summary", params=GENNAIO, headers=admin_headers).json()["data"]

        a1 = next(a for a in data["appointments"] if a["id"] == scenario.a1.id)
        assert {p["code"] for p in a1["procedures"]} == {"ECG", "HOL"}
        assert all(p["quantity"] == 1 for p in a1["procedures"])

    def test_lista_paginata(self, client, admin_headers, scenario):
        response = client.get("/appointments", params={"limit": 2, "paymentDone": "false"}, headers=admin_headers)

        assert response.status_code == 200
        body = response.json()
        assert [a["id"] for a in body["data"]] == [scenario.a2.id]
        assert body["pagination"]["total"] == 1

    def test_dettaglio(self, client, admin_headers, admin, scenario):
        a = crea_appuntamento(datetime(2025, 2, 1), scenario.carla, scenario.ana, 80.0,
                              procedure=[scenario.ecg], responsabile_id=admin["id"])

        response = client.get(f"/appointments/{a.id}", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["patient"]["fullName"] == "Carla Dias"
        assert data["patient"]["mobilePhone"] == "11987654321"
        assert data["doctor"]["crm"] == "111"
        assert data["responsibleUser"]["email"] == "admin@clinica.com.br"
        assert data["appointmentProcedures"][0]["unitPrice"] == 100.0
        assert data["appointmentProcedures"][0]["procedure"]["code"] == "ECG"

    def test_dettaglio_id_non_valido(self, client, admin_headers):
        response = client.get("/appointments/non-uuid", headers=admin_headers)

        assert response.status_code == 400
        assert response.json() == {"message": "ID inválido"}

    def test_dettaglio_inesistente(self, client, admin_headers):
        response = client.get(f"/appointments/{uuid.uuid4()}", headers=admin_headers)

        assert response.status_code == 404
        assert response.json() == {"message": "Atendimento não encontrado"}


class TestMedici:
    def test_metriche_per_medico(self, client, admin_headers, scenario):
        data = client.get("/doctors/metrics/summary", params=GENNAIO, headers=admin_headers).json()["data"]

        medici = data["doctors"]
        assert [m["name"] for m in medici] == ["Dr. Ana", "Dr. Bruno"]
        ana, bruno = medici
        assert ana["appointmentCount"] == 2
        assert ana["uniquePatients"] == 2
        assert ana["totalRevenue"] == 200.0
        assert ana["receivedRevenue"] == 200.0
        assert ana["pendingRevenue"] == 0
        assert ana["averageTicket"] == 100.0
        assert ana["specialties"] == [{"id": scenario.cardio.id, "name": "CARDIOLOGIA"}]
        assert ana["productivity"]["totalDays"] == 31
        assert ana["productivity"]["appointmentsPerDay"] == pytest.approx(2 / 31)
        assert bruno["totalRevenue"] == 0
        assert bruno["appointmentCount"] == 1

    def test_riepilogo(self, client, admin_headers, scenario):
        summary = client.get("/doctors/metrics/summary", params=GENNAIO, headers=admin_headers).json()["data"]["summary"]

        assert summary["totalDoctors"] == 2
        # le medie considerano solo i medici con valori non nulli
        assert summary["avgRevenue"] == 200.0
        assert summary["avgAppointments"] == 1.5
        assert summary["avgTicket"] == 50.0
        assert summary["topByRevenue"]["doctorId"] == scenario.ana.id
        assert summary["topByAppointments"] == {"doctorId": scenario.ana.id, "name": "Dr. Ana", "appointmentCount": 2}

    def test_riepilogo_senza_atendimenti(self, client, admin_headers):
        crea_medico("Dr. Solo", "999")

        summary = client.get("/doctors/metrics/summary", params=GENNAIO, headers=admin_headers).json()["data"]["summary"]

        assert summary["totalDoctors"] == 1
        assert summary["topByRevenue"] is None
        assert summary["topByAppointments"] is None
        assert summary["avgRevenue"] == 0

    def test_parita_vince_l_ultimo(self, client, admin_headers):
        primo = crea_medico("A Primo", "1")
        secondo = crea_medico("B Secondo", "2")
        crea_appuntamento(datetime(2025, 1, 5), medico=primo, valore_pagato=10.0)
        crea_appuntamento(datetime(2025, 1, 6), medico=secondo, valore_pagato=5.0)

        summary = client.get("/doctors/metrics/summary", params=GENNAIO, headers=admin_headers).json()["data"]["summary"]

        assert summary["topByAppointments"]["doctorId"] == secondo.id

    def test_lista_con_filtro_specialita(self, client, admin_headers, scenario):
        body = client.get("/doctors", params={"specialtyId": scenario.cardio.id}, headers=admin_headers).json()

        assert [m["name"] for m in body["data"]] == ["Dr. Ana"]
        assert body["data"][0]["appointmentCount"] == 2
        assert body["pagination"]["total"] == 1

    def test_dettaglio_storico(self, client, admin_headers, scenario):
        response = client.get(f"/doctors/{scenario.bruno.id}", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["doctor"]["name"] == "Dr. Bruno"
        assert data["metrics"]["totalAppointments"] == 2
        # senza periodo il pré-pago di dicembre conta
        assert data["metrics"]["totalRevenue"] == 350.0
        # Carla è tornata dal Dr. Bruno
        assert data["metrics"]["returnRate"] == 100.0
        assert data["proceduresByRevenue"] == [{"name": "ELETROCARDIOGRAMA", "code": "ECG", "count": 1, "revenue": 100.0}]

    def test_dettaglio_nel_periodo(self, client, admin_headers, scenario):
        data = client.get(f"/doctors/{scenario.bruno.id}", params=GENNAIO, headers=admin_headers).json()["data"]

        assert [a["id"] for a in data["appointments"]] == [scenario.a3.id]
        assert data["metrics"]["totalRevenue"] == 0

    def test_dettaglio_specialita_e_procedure(self, client, admin_headers, scenario):
        data = client.get(f"/doctors/{scenario.ana.id}", headers=admin_headers).json()["data"]

        assert data["doctor"]["specialties"] == [{"id": scenario.cardio.id, "name": "CARDIOLOGIA"}]
        assert data["metrics"]["returnRate"] == 0
        assert [p["code"] for p in data["proceduresByRevenue"]] == ["HOL", "ECG"]

    def test_dettaglio_inesistente(self, client, admin_headers):
        response = client.get(f"/doctors/{uuid.uuid4()}", headers=admin_headers)

        assert response.status_code == 404
        assert response.json() == {"message": "Médico não encontrado"}


class TestPazienti:
    def test_riepilogo_e_segmentazione(self, client, admin_headers, scenario):
        data = client.get("/patients/metrics/summary", params=GENNAIO, headers=admin_headers).json()["data"]

        summary = data["summary"]
        assert summary["totalPatients"] == 2
        assert summary["newPatients"] == 1
        assert summary["recurringPatients"] == 1
        # Carla ha 3 atendimenti, Davi 1
        assert summary["returnRate"] == 50.0
        assert summary["averageLTV"] == 300.0
        assert summary["churnRate"] == 100.0
        assert data["segmentation"]["atRisk"] == 2
        assert data["ltvDistribution"] == {"low": 1, "medium": 1, "high": 0}

    def test_vip_ed_elenco(self, client, admin_headers, scenario):
        data = client.get("/patients/metrics/summary", params=GENNAIO, headers=admin_headers).json()["data"]

        assert data["vipPatients"][0]["fullName"] == "Carla Dias"
        assert data["vipPatients"][0]["totalSpent"] == 500.0

        carla, davi = data["patients"]
        assert carla["fullName"] == "Carla Dias"
        assert carla["appointmentCount"] == 2
        assert carla["phone"] == "11987654321"
        # senza cellulare si usa il fisso
        assert davi["phone"] == "1133334444"

    def test_filtro_spesa_minima(self, client, admin_headers, scenario):
        data = client.get(
            "/patients/metrics/summary", params={**GENNAIO, "minSpent": 100}, headers=admin_headers
        ).json()["data"]

        assert [p["fullName"] for p in data["patients"]] == ["Carla Dias"]

    def test_inattivi(self, client, admin_headers, scenario):
        data = client.get("/patients/inactive", headers=admin_headers).json()["data"]

        assert data["monthsThreshold"] == 3
        assert data["totalInactive"] == 2

        per_medico = client.get(
            "/patients/inactive", params={"doctorId": scenario.bruno.id}, headers=admin_headers
        ).json()["data"]
        assert [p["fullName"] for p in per_medico["inactivePatients"]] == ["Carla Dias"]
        assert per_medico["inactivePatients"][0]["lastDoctorName"] == "Dr. Bruno"

    def test_inattivi_mesi_non_validi(self, client, admin_headers):
        response = client.get("/patients/inactive", params={"months": 0}, headers=admin_headers)
        assert response.status_code == 400

    def test_lista(self, client, admin_headers, scenario):
        body = client.get("/patients", headers=admin_headers).json()

        assert [p["fullName"] for p in body["data"]] == ["Carla Dias", "Davi Lima"]
        assert body["data"][0]["appointmentCount"] == 3

    def test_dettaglio(self, client, admin_headers, scenario):
        data = client.get(f"/patients/{scenario.carla.id}", headers=admin_headers).json()["data"]

        assert [a["id"] for a in data["appointments"]] == [scenario.a3.id, scenario.a1.id, scenario.a4.id]
        metriche = data["metrics"]
        assert metriche["appointmentCount"] == 3
        assert metriche["totalSpent"] == 550.0
        assert metriche["totalPaid"] == 550.0
        assert metriche["pendingAmount"] == 0
        assert metriche["averageTicket"] == pytest.approx(550.0 / 3)

    def test_dettaglio_inesistente(self, client, admin_headers):
        response = client.get(f"/patients/{uuid.uuid4()}", headers=admin_headers)
        assert response.json() == {"message": "Paciente não encontrado"}


HTML_COMPLEANNI = """
<table><tbody>
  <tr><td>{ext}</td><td>19</td><td>CARLA DIAS</td><td>19/10/1980</td><td>46</td>
      <td>20/01/2025</td><td>600</td><td><a href="mailto:carla@example.com">carla</a></td>
      <td>(99) 0000-0000</td><td>x</td></tr>
  <tr><td>X2</td><td>19</td><td>SCONOSCIUTO</td><td>19/10/1990</td><td>36</td>
      <td></td><td></td><td></td><td>(11) 3333-4444</td><td>x</td></tr>
  <tr><td>X3</td><td>20</td><td>ALTRO GIORNO</td><td>20/10/1990</td><td>36</td>
      <td></td><td></td><td></td><td></td><td>x</td></tr>
  <tr><td>riga corta</td></tr>
</tbody></table>
"""


class TestCompleanni:
    def test_parse_salta_righe_corte(self):
        righe = parse_compleanni(HTML_COMPLEANNI.format(ext="E1"))

        assert [r["externalId"] for r in righe] == ["E1", "X2", "X3"]
        assert righe[0]["email"] == "carla@example.com"
        assert righe[0]["phone"] == "(99) 0000-0000"

    def test_parse_vuoto(self):
        assert parse_compleanni("") == []

    def test_collega_per_external_id_o_telefono(self, scenario):
        client = mock.Mock()
        client.html.return_value = HTML_COMPLEANNI.format(ext=scenario.carla.external_id)

        risultato = compleanni(datetime(2025, 10, 19).date(), client=client)

        percorso, dati = client.html.call_args.args
        assert percorso.endswith("niver_listagem.php")
        assert dati["mes_nascimento"] == "10"
        assert risultato["total"] == 2
        carla, sconosciuto = risultato["birthdays"]
        assert carla["patientId"] == scenario.carla.id
        # match per cifre del telefono fisso di Davi
        assert sconosciuto["patientId"] == scenario.davi.id
        assert sconosciuto["patientData"]["fullName"] == "Davi Lima"

    def test_errore_s2web_502(self, client, admin_headers, monkeypatch):
        def _fallisce(giorno):
            raise S2webError("timeout")

        monkeypatch.setattr("clinica.api.pazienti.compleanni", _fallisce)

        response = client.get("/patients/birthdays", params={"date": "2025-10-19"}, headers=admin_headers)

        assert response.status_code == 502
        assert response.json() == {"message": "timeout"}


class TestProcedure:
    def test_metriche(self, client, admin_headers, scenario):
        data = client.get("/procedures/metrics/summary", params=GENNAIO, headers=admin_headers).json()["data"]

        assert data["summary"]["totalProcedures"] == 2
        top = data["topSelling"][0]
        assert top["code"] == "ECG"
        assert top["timesOrdered"] == 2
        assert top["quantitySold"] == 2
        assert top["totalRevenue"] == 200.0
        assert top["defaultPrice"] == 100.0
        assert [p["code"] for p in data["topRevenue"]] == ["HOL", "ECG"]
        assert [p["name"] for p in data["procedures"]] == ["ELETROCARDIOGRAMA", "HOLTER"]

    def test_lista_con_ricerca(self, client, admin_headers, scenario):
        body = client.get("/procedures", params={"search": "hol"}, headers=admin_headers).json()

        assert [p["code"] for p in body["data"]] == ["HOL"]
        assert body["data"][0]["appointmentCount"] == 1

    def test_combinazioni(self, client, admin_headers, scenario):
        body = client.get("/procedures/combinations", params={"minOccurrences": 1}, headers=admin_headers).json()

        assert len(body["data"]) == 1
        coppia = body["data"][0]
        assert {coppia["procedure1"]["name"], coppia["procedure2"]["name"]} == {"ELETROCARDIOGRAMA", "HOLTER"}
        assert coppia["occurrences"] == 1

    def test_dettaglio_con_trend(self, client, admin_headers, scenario):
        data = client.get(f"/procedures/{scenario.ecg.id}", params=GENNAIO, headers=admin_headers).json()["data"]

        assert data["procedure"]["code"] == "ECG"
        # atendimenti unici che contengono la procedura, fatturato sul valore pagato
        assert data["metrics"]["totalAppointments"] == 2
        assert data["metrics"]["totalRevenue"] == 500.0
        assert data["trend"]["current"]["timesOrdered"] == 2
        assert data["trend"]["previous"]["timesOrdered"] == 0
        assert data["trend"]["trend"] == "stable"

    def test_dettaglio_senza_periodo(self, client, admin_headers, scenario):
        data = client.get(f"/procedures/{scenario.holter.id}", headers=admin_headers).json()["data"]

        assert data["trend"] is None
        assert [a["id"] for a in data["appointments"]] == [scenario.a1.id]

    def test_dettaglio_inesistente(self, client, admin_headers):
        response = client.get(f"/procedures/{uuid.uuid4()}", headers=admin_headers)
        assert response.json() == {"message": "Procedimento não encontrado"}


class TestSpecialita:
    def test_lista_con_conteggi(self, client, admin_headers, scenario):
        crea_procedura("ECOCARDIOGRAMA", "ECO", 300.0, specialita_id=scenario.cardio.id)
        crea_specialita("DERMATOLOGIA")

        body = client.get("/specialties", headers=admin_headers).json()

        assert [sp["name"] for sp in body["data"]] == ["CARDIOLOGIA", "DERMATOLOGIA"]
        assert body["data"][0]["_count"] == {"doctorSpecialties": 1, "procedures": 1, "appointments": 1}
        assert body["data"][1]["_count"] == {"doctorSpecialties": 0, "procedures": 0, "appointments": 0}

    def test_dettaglio_conta_procedure(self, client, admin_headers, scenario):
        crea_procedura("ECOCARDIOGRAMA", "ECO", 300.0, specialita_id=scenario.cardio.id)

        data = client.get(f"/specialties/{scenario.cardio.id}", headers=admin_headers).json()["data"]

        assert data["_count"]["procedures"] == 1

    def test_dettaglio(self, client, admin_headers, scenario):
        data = client.get(f"/specialties/{scenario.cardio.id}", headers=admin_headers).json()["data"]

        assert [ms["doctor"]["name"] for ms in data["doctorSpecialties"]] == ["Dr. Ana"]
        assert [a["id"] for a in data["appointments"]] == [scenario.a1.id]

    def test_dettaglio_inesistente(self, client, admin_headers):
        response = client.get(f"/specialties/{uuid.uuid4()}", headers=admin_headers)
        assert response.json() == {"message": "Especialidade não encontrada"}
