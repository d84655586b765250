"""Importatori s2web (client finto), sincronizzazione, foglio Excel, manutenzione e CLI."""
from __future__ import annotations

import json
from datetime import datetime
from unittest import mock

import pandas as pd
import pytest
import requests
from sqlalchemy import func, select

from clinica.cli import build_parser
from clinica.db import db_session
from clinica.etl.client import ENDPOINT_SPECIALITA, S2webClient, S2webError
from clinica.etl.importatori import (
    EsitoImport,
    importa_appuntamenti,
    importa_appuntamenti_procedure,
    importa_medici_specialita,
    importa_procedure,
    importa_specialita,
    mappa_appuntamento,
)
from clinica.etl.manutenzione import aggiungi_spese_di_prova, conta_categorie_db, formatta_categorie, svuota_spese
from clinica.etl.spese_excel import FOGLIO, FoglioNonTrovato, conta_categorie_foglio, importa_spese
from clinica.etl.sync import esegui_sync
from clinica.models import Appuntamento, AppuntamentoProcedura, MedicoSpecialita, Paziente, Procedura, Specialita, Spesa

from conftest import crea_appuntamento, crea_medico, crea_paziente, crea_procedura, crea_specialita


class ClientFinto:
    """Restituisce pagine prefissate; post_json risponde per cod_medico."""

    def __init__(self, pagine=(), per_medico=None):
        self._pagine = list(pagine)
        self._per_medico = per_medico or {}
        self.campi = None
        self.cloni = []

    def pagine(self, endpoint, righe_per_pagina=50, pausa=0.5, **campi):
        self.campi = {"righe_per_pagina": righe_per_pagina, **campi}
        for n, righe in enumerate(self._pagine, start=1):
            yield n, righe

    def post_json(self, endpoint, **campi):
        return {"rows": self._per_medico.get(campi["cod_medico"], [])}

    def clona(self):
        copia = ClientFinto(self._pagine, self._per_medico)
        self.cloni.append(copia)
        return copia


def _risposta(testo: str) -> mock.Mock:
    r = mock.Mock()
    r.text = testo
    r.raise_for_status.return_value = None
    if testo.strip().startswith("{"):
        r.json.return_value = json.loads(testo)
    else:
        r.json.side_effect = ValueError("not json")
    return r


class TestClientS2web:
    def _client(self, *risposte) -> tuple[S2webClient, mock.Mock]:
        session = requests.Session()
        session.post = mock.Mock(side_effect=list(risposte))
        client = S2webClient(
            base_url="https://s2web.example/clinica",
            cookie="PHPSESSID=abc",
            cod_usuario="42",
            tokens={"cadastro": "tok-cadastro"},
            session=session,
        )
        return client, session.post

    def test_pagine_fino_a_risposta_vuota(self):
        client, post = self._client(
            _risposta('{"rows": [{"id": 1}, {"id": 2}]}'),
            _risposta('{"rows": [{"id": 3}]}'),
            _risposta(""),
        )

        pagine = list(client.pagine(ENDPOINT_SPECIALITA, righe_per_pagina=2, pausa=0))

        assert [(n, len(r)) for n, r in pagine] == [(1, 2), (2, 1)]
        url = post.call_args_list[0].args[0]
        dati = post.call_args_list[0].kwargs["data"]
        assert url == "https://s2web.example/clinica/modules/medicos_especialidade/esp_listagem.php"
        assert dati == {"cod_usuario": "42", "token": "tok-cadastro", "page": "1", "rows": "2"}
        assert client.session.headers["Cookie"] == "PHPSESSID=abc"

    def test_risposta_non_json_chiude_la_paginazione(self):
        client, _ = self._client(_risposta("<html>sessão expirada</html>"))

        assert list(client.pagine(ENDPOINT_SPECIALITA, pausa=0)) == []

    def test_errore_http(self):
        client, _ = self._client(requests.ConnectionError("rete giù"))

        with pytest.raises(S2webError, match="rete giù"):
            client.post_json(ENDPOINT_SPECIALITA)

    def test_clona_usa_una_nuova_sessione(self):
        client, post = self._client()

        copia = client.clona()

        assert copia.session is not client.session
        assert copia.session.headers["Cookie"] == "PHPSESSID=abc"
        assert copia.session.headers["X-Requested-With"] == "XMLHttpRequest"
        assert (copia.base_url, copia.cod_usuario, copia.tokens) == (client.base_url, "42", {"cadastro": "tok-cadastro"})
        assert copia.tokens is not client.tokens
        post.assert_not_called()


class TestAnagrafiche:
    def test_specialita_upsert(self):
        client = ClientFinto([[{"hii_cod_especialidade": 1, "especialidade": "CARDIOLOGIA"},
                               {"hii_cod_especialidade": 2, "especialidade": "DERMATOLOGIA"}]])

        esito = importa_specialita(client, pausa=0)

        assert (esito.creati, esito.aggiornati, esito.pagine) == (2, 0, 1)

        rinominata = ClientFinto([[{"hii_cod_especialidade": 1, "especialidade": "CARDIOLOGIA CLINICA"}]])
        esito = importa_specialita(rinominata, pausa=0)

        assert (esito.creati, esito.aggiornati) == (0, 1)
        with db_session() as s:
            sp = s.scalars(select(Specialita).where(Specialita.external_id == "1")).one()
            assert sp.nome == "CARDIOLOGIA CLINICA"
            assert sp.source_system == "s2web"
            assert sp.raw_payload["especialidade"] == "CARDIOLOGIA CLINICA"
            assert sp.synced_at is not None

    def test_riga_non_valida_contata_come_errore(self):
        client = ClientFinto([[{"hii_cod_especialidade": 1}, {"hii_cod_especialidade": 2, "especialidade": "X"}]])

        esito = importa_specialita(client, pausa=0)

        assert esito.errori == 1
        assert esito.creati == 1

    def test_procedure_prezzo_e_specialita(self):
        cardio = crea_specialita("CARDIOLOGIA")
        client = ClientFinto(
            [[
                {"hid_cod_amb": "10", "descricao": "ECG", "sigla": "ECG", "fnd_valor": "1.234,50",
                 "ch": "", "especialidade": "Cardiologia"},
                {"hid_cod_amb": "11", "descricao": "CONSULTA", "sigla": "", "fnd_valor": "0,00",
                 "especialidade": "Pediatria"},
            ]]
        )

        esito = importa_procedure(client, pausa=0)

        assert esito.creati == 2
        assert esito.non_trovati == {"Pediatria"}
        with db_session() as s:
            per_codice = {p.external_id: p for p in s.scalars(select(Procedura))}
        assert per_codice["10"].prezzo_base == 1234.5
        assert per_codice["10"].specialita_id == cardio.id
        assert per_codice["11"].prezzo_base is None
        assert per_codice["11"].codice is None
        assert per_codice["11"].specialita_id is None

    def test_medici_specialita(self):
        ana = crea_medico("Dr. Ana", "111")
        bruno = crea_medico("Dr. Bruno", "222")
        cardio = crea_specialita("CARDIOLOGIA")
        client = ClientFinto(
            per_medico={
                ana.external_id: [{"hii_id_especialidade": cardio.external_id, "txt_especialidade": "CARDIOLOGIA"}],
                bruno.external_id: [{"hii_id_especialidade": "999", "txt_especialidade": "ORTOPEDIA"}],
            }
        )

        esito = importa_medici_specialita(client, pausa=0)

        assert esito.creati == 1
        assert esito.saltati == 1
        # i worker non condividono il client chiamante
        assert 1 <= len(client.cloni) <= 2
        assert esito.non_trovati == {"ORTOPEDIA (ID: 999)"}
        with db_session() as s:
            legami = s.scalars(select(MedicoSpecialita)).all()
        assert [(ms.medico_id, ms.specialita_id) for ms in legami] == [(ana.id, cardio.id)]

        assert importa_medici_specialita(client, pausa=0).aggiornati == 1

    def test_medici_specialita_senza_medici(self):
        esito = importa_medici_specialita(ClientFinto(), pausa=0)
        assert esito.as_dict()["created"] == 0


RIGA_ATENDIMENTO = {
    "hii_cod_atendimento": "5001",
    "dat_atendimento": "10/01/2025",
    "dat_criacao": "05/01/2025",
    "hora_atendimento": "14:30",
    "medico": "Dr. Ana",
    "paciente": "Carla Dias",
    "txt_usuario_responsavel": "admin",
    "convenio": "UNIMED",
    "vlr_exames": "11500",
    "vlr_pago": "0",
    "hid_status": "F",
    "statusAtend": '<span class="badge"><strong>ATENDIDO</strong></span>',
    "exames": "ECG, HOLTER",
}


class TestAtendimenti:
    def test_mappa_riga(self):
        esito = EsitoImport("test")
        dati = mappa_appuntamento(RIGA_ATENDIMENTO, {"DR. ANA": "m1"}, {}, {"ADMIN": "u1"}, esito)

        assert dati["data_appuntamento"] == datetime(2025, 1, 10)
        assert dati["data_ora"] == datetime(2025, 1, 10, 14, 30)
        assert dati["data_creazione"] == datetime(2025, 1, 5)
        assert dati["valore_esame"] == 115.0
        assert dati["valore_pagato"] is None
        assert dati["pagato"] is True
        assert dati["stato"] == "ATENDIDO"
        assert dati["medico_id"] == "m1"
        assert dati["responsabile_id"] == "u1"
        assert "paziente_id" not in dati
        assert esito.non_trovati == {"paciente: Carla Dias"}

    def test_data_non_valida_usa_data_creazione(self):
        riga = {**RIGA_ATENDIMENTO, "dat_atendimento": "00/00/0000"}

        dati = mappa_appuntamento(riga, {}, {}, {}, EsitoImport("test"))

        assert dati["data_appuntamento"] == datetime(2025, 1, 5)

    def test_senza_date_valide_saltata(self):
        riga = {**RIGA_ATENDIMENTO, "dat_atendimento": "", "dat_criacao": "31/02/2025"}

        assert mappa_appuntamento(riga, {}, {}, {}, EsitoImport("test")) is None

    def test_import_collega_medico_paziente_e_responsabile(self, admin):
        ana = crea_medico("Dr. Ana", "111")
        carla = crea_paziente("CARLA DIAS")
        saltata = {**RIGA_ATENDIMENTO, "hii_cod_atendimento": "5002", "dat_atendimento": "", "dat_criacao": ""}
        client = ClientFinto([[RIGA_ATENDIMENTO, saltata]])

        esito = importa_appuntamenti(client, pausa=0, inizio="01/01/2025", fine="31/01/2025")

        assert (esito.creati, esito.saltati) == (1, 1)
        assert client.campi["ini"] == "01/01/2025"
        assert client.campi["righe_per_pagina"] == 300
        with db_session() as s:
            a = s.scalars(select(Appuntamento)).one()
        assert a.external_id == "5001"
        assert a.medico_id == ana.id
        assert a.paziente_id == carla.id
        assert a.responsabile_id == admin["id"]

    def test_collegamento_procedure_da_esami(self):
        ecg = crea_procedura("ELETROCARDIOGRAMA", "ECG", 80.0)
        holter = crea_procedura("HOLTER 24H", "HOL", 250.0)
        a = crea_appuntamento(datetime(2025, 1, 10), esami_raw="eletrocardiograma, hol, DESCONHECIDO")

        esito = importa_appuntamenti_procedure()

        assert esito.creati == 2
        assert esito.non_trovati == {"DESCONHECIDO"}
        with db_session() as s:
            legami = {ap.procedura_id: ap for ap in s.scalars(select(AppuntamentoProcedura))}
        assert set(legami) == {ecg.id, holter.id}
        assert legami[holter.id].prezzo_unitario == 250.0
        assert legami[holter.id].prezzo_totale == 250.0
        assert legami[ecg.id].quantita == 1
        assert all(ap.appuntamento_id == a.id for ap in legami.values())

        # una seconda esecuzione non duplica
        assert importa_appuntamenti_procedure().creati == 0


class TestSync:
    def test_si_ferma_al_primo_errore(self):
        eseguite = []

        def ok(client):
            eseguite.append("ok")

        def rotta(client):
            raise RuntimeError("s2web non risponde")

        def mai(client):
            eseguite.append("mai")

        esito = esegui_sync(client=object(), fasi=[("uno", ok), ("due", rotta), ("tre", mai)])

        assert eseguite == ["ok"]
        assert esito["success"] is False
        assert esito["message"] == "Sincronização concluída com erros"
        assert esito["statistics"]["totalScripts"] == 2
        assert esito["statistics"]["successCount"] == 1
        assert esito["statistics"]["failureCount"] == 1
        assert [s["name"] for s in esito["scripts"]] == ["uno", "due"]
        assert esito["scripts"][1]["error"] == "s2web non risponde"
        assert esito["scripts"][0]["duration"].endswith("s")

    def test_tutto_ok(self):
        esito = esegui_sync(client=object(), fasi=[("uno", lambda c: None)])

        assert esito["success"] is True
        assert esito["scripts"][0]["error"] is None

    def test_endpoint_solo_admin(self, client, viewer_headers):
        response = client.post("/sync/all", headers=viewer_headers)

        assert response.status_code == 403
        assert response.json() == {"message": "Forbidden. Only administrators have access to this resource."}

    @pytest.mark.parametrize("success, status", [(True, 200), (False, 500)])
    def test_endpoint_admin(self, client, admin_headers, monkeypatch, success, status):
        monkeypatch.setattr("clinica.api.sync.esegui_sync", lambda: {"success": success, "scripts": []})

        response = client.post("/sync/all", headers=admin_headers)

        assert response.status_code == status
        assert response.json()["success"] is success


def _scrivi_foglio(percorso, righe: dict[int, tuple], foglio: str = FOGLIO) -> None:
    n = max(righe) + 1
    df = pd.DataFrame([[None] * 11 for _ in range(n)], dtype=object)
    for indice, (pagamento, valore, mese, data, categoria) in righe.items():
        df.iat[indice, 6] = pagamento
        df.iat[indice, 7] = valore
        df.iat[indice, 8] = mese
        df.iat[indice, 9] = data
        df.iat[indice, 10] = categoria
    df.to_excel(percorso, sheet_name=foglio, header=False, index=False, engine="openpyxl")


class TestFoglioExcel:
    def test_importa_spese(self, tmp_path):
        percorso = tmp_path / "despesas.xlsx"
        _scrivi_foglio(
            percorso,
            {
                0: ("PAGAMENTO", "VALOR", "MÊS", "DATA", "CATEGORIA"),
                3: ("Aluguel sala", "R$ 2000,00", "Janeiro", datetime(2025, 1, 5), "Aluguel"),
                4: ("Conta luz", 350.5, "Janeiro", datetime(2025, 1, 6), "ENERGIA"),
                5: ("Sem valor", None, "Janeiro", datetime(2025, 1, 7), "OUTROS"),
            },
        )

        assert importa_spese(percorso) == {"total": 2, "imported": 2}
        with db_session() as s:
            spese = {e.pagamento: e for e in s.scalars(select(Spesa))}
        assert spese["Aluguel sala"].valore == 2000.0
        assert spese["Aluguel sala"].categoria == "ALUGUEL"
        assert spese["Conta luz"].data == datetime(2025, 1, 6)
        assert spese["Conta luz"].mese == "Janeiro"

    def test_categorie_grezze(self, tmp_path):
        percorso = tmp_path / "despesas.xlsx"
        _scrivi_foglio(
            percorso,
            {
                0: ("PAGAMENTO", "VALOR", "MÊS", "DATA", "CATEGORIA"),
                3: ("a", 1, None, datetime(2025, 1, 1), "Aluguel"),
                4: ("b", 1, None, datetime(2025, 1, 1), "ENERGIA"),
                5: ("c", 1, None, datetime(2025, 1, 1), "Aluguel"),
            },
        )

        assert conta_categorie_foglio(percorso) == [("Aluguel", 2), ("ENERGIA", 1)]

    def test_foglio_mancante(self, tmp_path):
        percorso = tmp_path / "altro.xlsx"
        _scrivi_foglio(percorso, {3: ("a", 1, None, datetime(2025, 1, 1), "X")}, foglio="Planilha1")

        with pytest.raises(FoglioNonTrovato):
            importa_spese(percorso)


class TestManutenzione:
    def test_spese_di_prova_analisi_e_pulizia(self):
        assert aggiungi_spese_di_prova() == 6

        conteggi = conta_categorie_db()
        assert len(conteggi) == 6
        assert all(n == 1 for _, n in conteggi)
        righe = formatta_categorie(conteggi)
        assert len(righe) == 6
        assert righe[0].startswith("  1. ")
        assert "(16.7%)" in righe[0]

        assert svuota_spese() == 6
        assert svuota_spese() == 0


class TestCli:
    def test_init_reset_svuota_il_db(self, capsys):
        crea_paziente("Da cancellare")
        args = build_parser().parse_args(["init", "--reset"])

        args.func(args)

        assert "DB inizializzato." in capsys.readouterr().out
        with db_session() as s:
            assert s.scalar(select(func.count(Paziente.id))) == 0

    def test_parser_import(self):
        args = build_parser().parse_args(["import", "appointments", "--inizio", "01/02/2025"])

        assert args.nome == "appointments"
        assert args.inizio == "01/02/2025"
        assert args.fine == "31/12/2026"

    def test_parser_rifiuta_importatore_sconosciuto(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["import", "waitlist"])

    def test_add_mock_e_analisi(self, capsys):
        parser = build_parser()
        for comando in (["add-mock-expenses"], ["analyze-db-categories"]):
            args = parser.parse_args(comando)
            args.func(args)

        out = capsys.readouterr().out
        assert "6 spese di prova create." in out
        assert "Categorie distinte: 6" in out

    def test_sync_all_fallita_esce_con_1(self, monkeypatch):
        monkeypatch.setattr("clinica.cli.esegui_sync", lambda: {"success": False})
        args = build_parser().parse_args(["sync-all"])

        with pytest.raises(SystemExit) as exc:
            args.func(args)
        assert exc.value.code == 1
