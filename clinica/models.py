from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .auth_models import Utente
from .config import SOURCE_SYSTEM
from .db import Base


def new_uuid() -> str:
    return str(uuid.uuid4())


STATO_PRE_PAGATO_ATTESO = "PRÉ-PAGO ATENDIDO"


class OrigineEsterna:
    """Colonne comuni alle entità importate da un sistema esterno (s2web)."""

    external_id: Mapped[str] = mapped_column(String(64), nullable=False)
    source_system: Mapped[str] = mapped_column(String(32), nullable=False, default=SOURCE_SYSTEM)
    synced_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    raw_payload: Mapped[Any | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Specialita(OrigineEsterna, Base):
    __tablename__ = "specialita"
    __table_args__ = (UniqueConstraint("external_id", "source_system", name="uq_specialita_origine"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    nome: Mapped[str] = mapped_column(String(160), nullable=False)
    sigla: Mapped[str | None] = mapped_column(String(20), nullable=True)

    medici: Mapped[list["MedicoSpecialita"]] = relationship(back_populates="specialita", cascade="all, delete-orphan")
    procedure: Mapped[list["Procedura"]] = relationship(back_populates="specialita")
    appuntamenti: Mapped[list["Appuntamento"]] = relationship(back_populates="specialita")

    def __repr__(self) -> str:
        return f"Specialita({self.nome})"


class Medico(OrigineEsterna, Base):
    __tablename__ = "medici"
    __table_args__ = (UniqueConstraint("external_id", "source_system", name="uq_medici_origine"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    nome: Mapped[str] = mapped_column(String(160), nullable=False)
    crm: Mapped[str | None] = mapped_column(String(30), nullable=True)
    telefono_casa: Mapped[str | None] = mapped_column(String(30), nullable=True)
    telefono_ufficio: Mapped[str | None] = mapped_column(String(30), nullable=True)
    cellulare: Mapped[str | None] = mapped_column(String(30), nullable=True)

    specialita: Mapped[list["MedicoSpecialita"]] = relationship(back_populates="medico", cascade="all, delete-orphan")
    appuntamenti: Mapped[list["Appuntamento"]] = relationship(back_populates="medico")

    def __repr__(self) -> str:
        return f"Medico({self.nome}, CRM {self.crm or '-'})"


class MedicoSpecialita(Base):
    __tablename__ = "medici_specialita"
    __table_args__ = (UniqueConstraint("medico_id", "specialita_id", name="uq_medico_specialita"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    medico_id: Mapped[str] = mapped_column(ForeignKey("medici.id", ondelete="CASCADE"), nullable=False)
    specialita_id: Mapped[str] = mapped_column(ForeignKey("specialita.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    medico: Mapped["Medico"] = relationship(back_populates="specialita")
    specialita: Mapped["Specialita"] = relationship(back_populates="medici")


class Paziente(OrigineEsterna, Base):
    __tablename__ = "pazienti"
    __table_args__ = (UniqueConstraint("external_id", "source_system", name="uq_pazienti_origine"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    nome_completo: Mapped[str] = mapped_column(String(200), nullable=False)
    nome_madre: Mapped[str | None] = mapped_column(String(200), nullable=True)
    documento: Mapped[str | None] = mapped_column(String(40), nullable=True)
    cpf: Mapped[str | None] = mapped_column(String(20), nullable=True)
    telefono_casa: Mapped[str | None] = mapped_column(String(30), nullable=True)
    cellulare: Mapped[str | None] = mapped_column(String(30), nullable=True)
    convenzione: Mapped[str | None] = mapped_column(String(160), nullable=True)

    appuntamenti: Mapped[list["Appuntamento"]] = relationship(back_populates="paziente")

    def __repr__(self) -> str:
        return f"Paziente({self.nome_completo})"


class Procedura(OrigineEsterna, Base):
    __tablename__ = "procedure"
    __table_args__ = (UniqueConstraint("external_id", "source_system", name="uq_procedure_origine"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    nome: Mapped[str] = mapped_column(String(255), nullable=False)
    codice: Mapped[str | None] = mapped_column(String(40), nullable=True)
    prezzo_base: Mapped[float | None] = mapped_column(Float, nullable=True)
    ch: Mapped[str | None] = mapped_column(String(20), nullable=True)
    nome_specialita: Mapped[str | None] = mapped_column(String(160), nullable=True)
    specialita_id: Mapped[str | None] = mapped_column(ForeignKey("specialita.id"), nullable=True)

    specialita: Mapped["Specialita | None"] = relationship(back_populates="procedure")
    appuntamenti: Mapped[list["AppuntamentoProcedura"]] = relationship(back_populates="procedura")

    def __repr__(self) -> str:
        return f"Procedura({self.codice or '-'} {self.nome})"


class Appuntamento(OrigineEsterna, Base):
    """
    Atendimento importato da s2web.
    - data_appuntamento: giorno dell'atendimento (00:00)
    - data_creazione: giorno di registrazione sul sistema legacy
    - valori monetari in reais (float), None se non presenti
    """
    __tablename__ = "appuntamenti"
    __table_args__ = (UniqueConstraint("external_id", "source_system", name="uq_appuntamenti_origine"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    data_appuntamento: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    ora_appuntamento: Mapped[str | None] = mapped_column(String(10), nullable=True)
    data_ora: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    data_creazione: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)
    convenzione: Mapped[str | None] = mapped_column(String(160), nullable=True)
    valore_esame: Mapped[float | None] = mapped_column(Float, nullable=True)
    valore_pagato: Mapped[float | None] = mapped_column(Float, nullable=True)
    pagato: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    stato: Mapped[str | None] = mapped_column(String(80), nullable=True)
    esami_raw: Mapped[str | None] = mapped_column(Text, nullable=True)

    paziente_id: Mapped[str | None] = mapped_column(ForeignKey("pazienti.id"), nullable=True)
    medico_id: Mapped[str | None] = mapped_column(ForeignKey("medici.id"), nullable=True)
    specialita_id: Mapped[str | None] = mapped_column(ForeignKey("specialita.id"), nullable=True)
    responsabile_id: Mapped[str | None] = mapped_column(ForeignKey("utenti.id", ondelete="SET NULL"), nullable=True)

    paziente: Mapped["Paziente | None"] = relationship(back_populates="appuntamenti")
    medico: Mapped["Medico | None"] = relationship(back_populates="appuntamenti")
    specialita: Mapped["Specialita | None"] = relationship(back_populates="appuntamenti")
    responsabile: Mapped[Utente | None] = relationship()
    procedure: Mapped[list["AppuntamentoProcedura"]] = relationship(
        back_populates="appuntamento", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"Appuntamento({self.external_id}, {self.data_appuntamento:%Y-%m-%d})"


class AppuntamentoProcedura(Base):
    __tablename__ = "appuntamenti_procedure"
    __table_args__ = (UniqueConstraint("appuntamento_id", "procedura_id", name="uq_appuntamento_procedura"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    appuntamento_id: Mapped[str] = mapped_column(ForeignKey("appuntamenti.id", ondelete="CASCADE"), nullable=False)
    procedura_id: Mapped[str] = mapped_column(ForeignKey("procedure.id", ondelete="CASCADE"), nullable=False)
    quantita: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    prezzo_unitario: Mapped[float | None] = mapped_column(Float, nullable=True)
    prezzo_totale: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    appuntamento: Mapped["Appuntamento"] = relationship(back_populates="procedure")
    procedura: Mapped["Procedura"] = relationship(back_populates="appuntamenti")


class Spesa(Base):
    __tablename__ = "spese"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    pagamento: Mapped[str] = mapped_column(String(255), nullable=False)
    valore: Mapped[float] = mapped_column(Float, nullable=False)
    data: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    categoria: Mapped[str] = mapped_column(String(80), nullable=False)
    mese: Mapped[str | None] = mapped_column(String(30), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"Spesa({self.categoria}: {self.pagamento} {self.valore:.2f})"
