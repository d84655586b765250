from __future__ import annotations

import functools
import logging
from typing import Any, Callable, Generic, Iterable, Sequence, TypeVar

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session
from sqlalchemy.sql.expression import ColumnElement

from clinica.db import Base

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=Base)
F = TypeVar("F", bound=Callable[..., Any])


def registra_errori(fn: F) -> F:
    """Logga l'eccezione con il nome del metodo DAO e la rilancia."""

    @functools.wraps(fn)
    def wrapper(self: "BaseDAO", *args: Any, **kwargs: Any) -> Any:
        try:
            return fn(self, *args, **kwargs)
        except Exception:
            logger.exception("Errore in %s.%s", type(self).__name__, fn.__name__)
            raise

    return wrapper  # type: ignore[return-value]


class BaseDAO(Generic[M]):
    """
    Accesso dati generico per una tabella.
    La sessione è fornita dal chiamante (di solito da db_session()),
    commit/rollback restano a carico suo.
    """

    model: type[M]

    def __init__(self, session: Session):
        self.s = session

    @registra_errori
    def find_one(self, *criteri: ColumnElement[bool], opzioni: Iterable[Any] = (), **filtri: Any) -> M | None:
        q = select(self.model).where(*criteri).filter_by(**filtri).options(*opzioni).limit(1)
        return self.s.scalars(q).first()

    @registra_errori
    def find_many(
        self,
        *criteri: ColumnElement[bool],
        order_by: Sequence[Any] | Any = (),
        skip: int | None = None,
        take: int | None = None,
        opzioni: Iterable[Any] = (),
        **filtri: Any,
    ) -> list[M]:
        if not isinstance(order_by, (list, tuple)):
            order_by = (order_by,)
        q = select(self.model).where(*criteri).filter_by(**filtri).options(*opzioni).order_by(*order_by)
        if skip:
            q = q.offset(skip)
        if take is not None:
            q = q.limit(take)
        return list(self.s.scalars(q).unique())

    @registra_errori
    def find_by_id(self, id: str, opzioni: Iterable[Any] = ()) -> M | None:
        if opzioni:
            return self.find_one(self.model.id == id, opzioni=opzioni)
        return self.s.get(self.model, id)

    @registra_errori
    def count(self, *criteri: ColumnElement[bool], **filtri: Any) -> int:
        q = select(func.count()).select_from(self.model).where(*criteri).filter_by(**filtri)
        return int(self.s.scalar(q) or 0)

    @registra_errori
    def create_one(self, **dati: Any) -> M:
        obj = self.model(**dati)
        self.s.add(obj)
        self.s.flush()
        return obj

    @registra_errori
    def create_many(self, righe: Iterable[dict[str, Any]]) -> int:
        objs = [self.model(**r) for r in righe]
        self.s.add_all(objs)
        self.s.flush()
        return len(objs)

    @registra_errori
    def update_one(self, id: str, dati: dict[str, Any]) -> M | None:
        obj = self.s.get(self.model, id)
        if obj is None:
            return None
        for k, v in dati.items():
            setattr(obj, k, v)
        self.s.flush()
        return obj

    @registra_errori
    def update_many(self, dati: dict[str, Any], *criteri: ColumnElement[bool]) -> int:
        res = self.s.execute(update(self.model).where(*criteri).values(**dati))
        return res.rowcount or 0

    @registra_errori
    def delete_one(self, id: str) -> bool:
        obj = self.s.get(self.model, id)
        if obj is None:
            return False
        self.s.delete(obj)
        self.s.flush()
        return True

    @registra_errori
    def delete_many(self, *criteri: ColumnElement[bool]) -> int:
        res = self.s.execute(delete(self.model).where(*criteri))
        return res.rowcount or 0

    @registra_errori
    def upsert(self, chiave: dict[str, Any], dati: dict[str, Any]) -> tuple[M, bool]:
        """Aggiorna la riga identificata da `chiave` o la crea. Ritorna (oggetto, creato)."""
        obj = self.s.scalars(select(self.model).filter_by(**chiave).limit(1)).first()
        if obj is None:
            obj = self.model(**chiave, **dati)
            self.s.add(obj)
            self.s.flush()
            return obj, True
        for k, v in dati.items():
            setattr(obj, k, v)
        self.s.flush()
        return obj, False
