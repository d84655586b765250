from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, String
from sqlalchemy.orm import Mapped, mapped_column

from clinica.db import Base


def new_uuid() -> str:
    return str(uuid.uuid4())


class RuoloUtente(str, enum.Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    VIEWER = "VIEWER"


class Utente(Base):
    """
    Utente applicativo per autenticazione.
    - email univoca (usata come username nel login)
    - password_hash con bcrypt (passlib)
    - ruolo ADMIN / MANAGER / VIEWER
    """
    __tablename__ = "utenti"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    nome: Mapped[str] = mapped_column(String(120), nullable=False)
    email: Mapped[str] = mapped_column(String(160), unique=True, nullable=False)
    telefono: Mapped[str | None] = mapped_column(String(30), nullable=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    ruolo: Mapped[RuoloUtente] = mapped_column(Enum(RuoloUtente), default=RuoloUtente.VIEWER, nullable=False)

    attivo: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"Utente({self.email}, {self.ruolo.value})"
