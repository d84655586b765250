"""Fixture condivise: DB SQLite temporaneo, client API, utenti e dati di esempio."""
from __future__ import annotations

import os
import tempfile
from datetime import datetime
from itertools import count
from pathlib import Path

# La configurazione viene letta all'import: l'ambiente va preparato prima di importare clinica
_TMP_DIR = tempfile.mkdtemp(prefix="clinica-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{Path(_TMP_DIR) / 'test.sqlite'}"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["ADMIN_EMAIL"] = ""
os.environ["ADMIN_PASSWORD"] = ""

import pytest
from fastapi.testclient import TestClient

from clinica.api_main import app
from clinica.auth_models import RuoloUtente
from clinica.auth_security import create_access_token
from clinica.auth_service import crea_utente
from clinica.db import Base, db_session, engine, reset_db
from clinica.models import (
    Appuntamento,
    AppuntamentoProcedura,
    Medico,
    MedicoSpecialita,
    Paziente,
    Procedura,
    Specialita,
    Spesa,
)

_ext = count(1)


def _external_id() -> str:
    return f"T{next(_ext)}"


@pytest.fixture(autouse=True)
def db():
    """Schema pulito per ogni test."""
    reset_db()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client():
    return TestClient(app)


def headers_per(utente: dict) -> dict[str, str]:
    token = create_access_token(
        subject=utente["id"], extra={"name": utente["name"], "role": utente["role"], "email": utente["email"]}
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin():
    return crea_utente("admin@clinica.com.br", "Admin", "segreta1", RuoloUtente.ADMIN)


@pytest.fixture
def admin_headers(admin):
    return headers_per(admin)


@pytest.fixture
def viewer():
    return crea_utente("viewer@clinica.com.br", "Viewer", "segreta1", RuoloUtente.VIEWER)


@pytest.fixture
def viewer_headers(viewer):
    return headers_per(viewer)


# =========================
# Factory dati di dominio
# =========================
def crea_specialita(nome: str = "CARDIOLOGIA", **kw) -> Specialita:
    with db_session() as s:
        sp = Specialita(external_id=_external_id(), nome=nome, **kw)
        s.add(sp)
    return sp


def crea_medico(nome: str = "Dr. House", crm: str = "1234", specialita: list[Specialita] = (), **kw) -> Medico:
    with db_session() as s:
        m = Medico(external_id=_external_id(), nome=nome, crm=crm, **kw)
        s.add(m)
        s.flush()
        for sp in specialita:
            s.add(MedicoSpecialita(medico_id=m.id, specialita_id=sp.id))
    return m


def crea_paziente(nome: str = "Maria Silva", **kw) -> Paziente:
    with db_session() as s:
        p = Paziente(external_id=_external_id(), nome_completo=nome, **kw)
        s.add(p)
    return p


def crea_procedura(nome: str = "ELETROCARDIOGRAMA", codice: str = "ECG", prezzo_base: float | None = 100.0, **kw) -> Procedura:
    with db_session() as s:
        p = Procedura(external_id=_external_id(), nome=nome, codice=codice, prezzo_base=prezzo_base, **kw)
        s.add(p)
    return p


def crea_appuntamento(
    data: datetime,
    paziente: Paziente | None = None,
    medico: Medico | None = None,
    valore_esame: float | None = None,
    valore_pagato: float | None = None,
    procedure: list[Procedura] = (),
    **kw,
) -> Appuntamento:
    with db_session() as s:
        a = Appuntamento(
            external_id=_external_id(),
            data_appuntamento=data,
            paziente_id=paziente.id if paziente else None,
            medico_id=medico.id if medico else None,
            valore_esame=valore_esame,
            valore_pagato=valore_pagato,
            pagato=kw.pop("pagato", valore_pagato is not None),
            **kw,
        )
        s.add(a)
        s.flush()
        for p in procedure:
            s.add(
                AppuntamentoProcedura(
                    appuntamento_id=a.id, procedura_id=p.id, prezzo_unitario=p.prezzo_base, prezzo_totale=p.prezzo_base
                )
            )
    return a


def crea_spesa(pagamento: str, valore: float, data: datetime, categoria: str, mese: str | None = None) -> Spesa:
    with db_session() as s:
        e = Spesa(pagamento=pagamento, valore=valore, data=data, categoria=categoria, mese=mese)
        s.add(e)
    return e
