from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

ROOT_DIR = Path(__file__).resolve().parents[1]

# DB: di default SQLite su file nella root del progetto
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{ROOT_DIR / 'clinica.sqlite'}")
DATABASE_ECHO = os.getenv("DATABASE_ECHO", "0") == "1"

# In produzione: mettila in variabile d'ambiente
JWT_SECRET = os.getenv("JWT_SECRET", "CHANGE_ME_DEV_SECRET")
JWT_ALG = "HS256"
# token validi 7 giorni
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("JWT_EXPIRE_MINUTES", str(7 * 24 * 60)))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("LOG_JSON", "0") == "1"

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

# Utente amministratore creato allo startup (solo se configurato)
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")
ADMIN_NAME = os.getenv("ADMIN_NAME", "Administrador")

# Sistema legacy s2web
SOURCE_SYSTEM = "s2web"
S2WEB_BASE_URL = os.getenv("S2WEB_BASE_URL", "https://ww3.s2web.com.br/lp_riodoce").rstrip("/")
S2WEB_COOKIE = os.getenv("S2WEB_COOKIE", "")
S2WEB_COD_USUARIO = os.getenv("S2WEB_COD_USUARIO", "")
S2WEB_TIMEOUT = float(os.getenv("S2WEB_TIMEOUT", "60"))

# Ogni modulo s2web ha il proprio token; S2WEB_TOKEN vale come fallback
S2WEB_TOKENS = {
    "cadastro": os.getenv("S2WEB_TOKEN_CADASTRO", os.getenv("S2WEB_TOKEN", "")),
    "atendimentos": os.getenv("S2WEB_TOKEN_ATENDIMENTOS", os.getenv("S2WEB_TOKEN", "")),
    "pacientes": os.getenv("S2WEB_TOKEN_PACIENTES", os.getenv("S2WEB_TOKEN", "")),
}

# Foglio Excel delle spese
EXPENSES_XLSX = os.getenv("EXPENSES_XLSX", str(ROOT_DIR / "data" / "despesas.xlsx"))
