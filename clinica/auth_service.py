from __future__ import annotations

from typing import Any

from clinica.auth_models import RuoloUtente, Utente
from clinica.auth_security import hash_password, verify_password
from clinica.dao import UtenteDAO
from clinica.db import db_session


def utente_flat(u: Utente) -> dict[str, Any]:
    """Dati pubblici dell'utente: mai il password_hash."""
    return {
        "id": u.id,
        "name": u.nome,
        "email": u.email,
        "phone": u.telefono,
        "role": u.ruolo.value,
        "active": u.attivo,
        "createdAt": u.created_at,
        "updatedAt": u.updated_at,
    }


def crea_utente(email: str, nome: str, password: str, ruolo: RuoloUtente = RuoloUtente.VIEWER) -> dict[str, Any]:
    email = email.strip().lower()
    if not email or not password:
        raise ValueError("Email e password sono obbligatori.")

    with db_session() as s:
        dao = UtenteDAO(s)
        if dao.exists_by_email(email):
            raise ValueError("User with this email already exists")

        u = dao.create_one(email=email, nome=nome.strip(), password_hash=hash_password(password), ruolo=ruolo)
        return utente_flat(u)


def autentica(email: str, password: str) -> Utente | None:
    with db_session() as s:
        u = UtenteDAO(s).find_by_email(email)
        if not u or not u.attivo:
            return None
        if not verify_password(password, u.password_hash):
            return None
        return u


def get_utente_by_id(user_id: str) -> Utente | None:
    with db_session() as s:
        return s.get(Utente, user_id)
