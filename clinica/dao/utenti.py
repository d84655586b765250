from __future__ import annotations

from clinica.auth_models import Utente

from .base import BaseDAO, registra_errori


class UtenteDAO(BaseDAO[Utente]):
    model = Utente

    @registra_errori
    def find_by_email(self, email: str) -> Utente | None:
        return self.find_one(email=email.strip().lower())

    def exists_by_email(self, email: str) -> bool:
        return self.find_by_email(email) is not None
