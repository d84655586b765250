from .appuntamenti import AppuntamentoDAO
from .base import BaseDAO
from .medici import MedicoDAO, MedicoSpecialitaDAO
from .pazienti import PazienteDAO
from .procedure import ProceduraDAO
from .specialita import SpecialitaDAO
from .spese import SpesaDAO
from .utenti import UtenteDAO

__all__ = [
    "AppuntamentoDAO",
    "BaseDAO",
    "MedicoDAO",
    "MedicoSpecialitaDAO",
    "PazienteDAO",
    "ProceduraDAO",
    "SpecialitaDAO",
    "SpesaDAO",
    "UtenteDAO",
]
