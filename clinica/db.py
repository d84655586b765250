from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .config import DATABASE_ECHO, DATABASE_URL

# SQLite di default (file locale); qualsiasi URL SQLAlchemy via DATABASE_URL
engine = create_engine(
    DATABASE_URL,
    echo=DATABASE_ECHO,
    future=True,
    connect_args={"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {},
)

# expire_on_commit=False: i service restituiscono oggetti usati dopo la chiusura della sessione
SessionLocal = sessionmaker(bind=engine, autoflush=False, future=True, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


@contextmanager
def db_session() -> Iterator[Session]:
    """Sessione transazionale: commit all'uscita, rollback (e rilancio) su eccezione."""
    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def _registra_modelli() -> None:
    from . import auth_models, models  # noqa: F401


def init_db() -> None:
    _registra_modelli()
    Base.metadata.create_all(bind=engine)


def reset_db() -> None:
    """Elimina e ricrea tutte le tabelle. Cancella i dati."""
    _registra_modelli()
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
