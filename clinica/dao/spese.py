from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import func, select

from clinica.models import Spesa

from .base import BaseDAO, registra_errori


class SpesaDAO(BaseDAO[Spesa]):
    model = Spesa

    @registra_errori
    def totale(self, *criteri) -> float:
        return float(self.s.scalar(select(func.sum(Spesa.valore)).where(*criteri)) or 0)

    @registra_errori
    def per_categoria(self, *criteri) -> list[dict[str, Any]]:
        """Somma e numero di spese per categoria, in ordine di valore decrescente."""
        somma = func.sum(Spesa.valore)
        q = (
            select(Spesa.categoria, somma, func.count(Spesa.id))
            .where(*criteri)
            .group_by(Spesa.categoria)
            .order_by(somma.desc())
        )
        return [{"categoria": c, "totale": float(t or 0), "count": int(n)} for c, t, n in self.s.execute(q)]

    @staticmethod
    def nel_periodo(start: datetime, end: datetime):
        return (Spesa.data >= start) & (Spesa.data <= end)
