"""
Router FastAPI per dominio.

Ogni risposta riuscita incapsula il payload in {"data": ...};
gli errori hanno la forma {"message": ...}.
"""
from . import appuntamenti, auth, medici, metriche, pazienti, procedure, specialita, spese, sync, utenti

ROUTERS = [
    auth.router,
    utenti.router,
    appuntamenti.router,
    medici.router,
    pazienti.router,
    procedure.router,
    specialita.router,
    metriche.router,
    spese.router,
    sync.router,
]
