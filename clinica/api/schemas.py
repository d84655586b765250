from __future__ import annotations

from pydantic import BaseModel, EmailStr, Field

from clinica.auth_models import RuoloUtente


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UtenteCreateIn(BaseModel):
    email: EmailStr
    name: str = Field(..., min_length=1)
    password: str = Field(..., min_length=6)
    role: RuoloUtente = RuoloUtente.VIEWER


class UtenteUpdateIn(BaseModel):
    email: EmailStr | None = None
    name: str | None = Field(None, min_length=1)
    password: str | None = Field(None, min_length=6)
    role: RuoloUtente | None = None
    phone: str | None = None
    active: bool | None = None


class SpesaCreateIn(BaseModel):
    payment: str = Field(..., min_length=1)
    value: float = Field(..., gt=0)
    date: str
    category: str = Field(..., min_length=1)
    month: str | None = None


class SpesaUpdateIn(BaseModel):
    payment: str | None = Field(None, min_length=1)
    value: float | None = Field(None, gt=0)
    date: str | None = None
    category: str | None = Field(None, min_length=1)
    month: str | None = Field(None, min_length=1)
