from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from clinica.config import ACCESS_TOKEN_EXPIRE_MINUTES, JWT_ALG, JWT_SECRET

if TYPE_CHECKING:
    from clinica.auth_models import Utente

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def claim_utente(utente: "Utente") -> dict[str, Any]:
    """Claim letti dal frontend per mostrare nome e ruolo senza chiamare /me."""
    return {"name": utente.nome, "role": utente.ruolo.value, "email": utente.email}


def create_access_token(subject: str, extra: dict[str, Any] | None = None, minuti: int | None = None) -> str:
    now = datetime.now(timezone.utc)
    expire = now + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES if minuti is None else minuti)

    payload: dict[str, Any] = {**(extra or {}), "sub": subject, "iat": int(now.timestamp()), "exp": int(expire.timestamp())}
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALG)


def token_per_utente(utente: "Utente") -> str:
    return create_access_token(utente.id, claim_utente(utente))


def decode_token(token: str) -> dict[str, Any]:
    return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG])


def get_subject(token: str) -> str | None:
    # token scaduto, firmato con un altro segreto o malformato
    try:
        return decode_token(token).get("sub") or None
    except JWTError:
        return None
