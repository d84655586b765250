from __future__ import annotations

import logging

from .auth_models import RuoloUtente
from .auth_security import hash_password
from .config import ADMIN_EMAIL, ADMIN_NAME, ADMIN_PASSWORD
from .dao import UtenteDAO
from .db import db_session

logger = logging.getLogger(__name__)


def seed_admin(email: str | None = ADMIN_EMAIL, password: str | None = ADMIN_PASSWORD, nome: str = ADMIN_NAME) -> bool:
    """
    Crea l'utente amministratore se configurato e non ancora presente (idempotente).
    Ritorna True se l'utente è stato creato.
    """
    if not email or not password:
        return False

    with db_session() as s:
        dao = UtenteDAO(s)
        if dao.exists_by_email(email):
            return False
        dao.create_one(
            email=email.strip().lower(),
            nome=nome,
            password_hash=hash_password(password),
            ruolo=RuoloUtente.ADMIN,
        )
    logger.info("Utente admin creato: %s", email)
    return True
