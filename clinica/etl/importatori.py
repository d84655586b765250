"""
Importatori s2web -> DB locale.

Ogni importatore scorre le pagine del sistema legacy e fa upsert per
(external_id, source_system). Una pagina corrisponde a una transazione:
un errore di mappatura su una riga viene contato e loggato, un errore del DB
interrompe l'importazione.
"""
from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable

from sqlalchemy import func, select

from clinica.config import SOURCE_SYSTEM
from clinica.dao import (
    AppuntamentoDAO,
    MedicoDAO,
    MedicoSpecialitaDAO,
    PazienteDAO,
    ProceduraDAO,
    SpecialitaDAO,
    UtenteDAO,
)
from clinica.dao.base import BaseDAO
from clinica.db import db_session
from clinica.models import Appuntamento, AppuntamentoProcedura, Medico, Procedura

from .client import (
    ENDPOINT_APPUNTAMENTI,
    ENDPOINT_MEDICI,
    ENDPOINT_MEDICI_SPECIALITA,
    ENDPOINT_PAZIENTI,
    ENDPOINT_PROCEDURE,
    ENDPOINT_SPECIALITA,
    S2webClient,
)
from .parsing import estrai_stato, normalizza_nome, parse_centesimi, parse_data_br, parse_prezzo_br

logger = logging.getLogger(__name__)

# periodo degli atendimenti richiesto al sistema legacy (dd/mm/yyyy)
INIZIO_ATENDIMENTI = "01/01/2024"
FINE_ATENDIMENTI = "31/12/2026"

LOTTO_MEDICI = 5
LOTTO_APPUNTAMENTI = 100

ERRORI_RIGA = (KeyError, TypeError, ValueError, AttributeError)


@dataclass
class EsitoImport:
    nome: str
    creati: int = 0
    aggiornati: int = 0
    saltati: int = 0
    errori: int = 0
    pagine: int = 0
    non_trovati: set[str] = field(default_factory=set)

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.nome,
            "created": self.creati,
            "updated": self.aggiornati,
            "skipped": self.saltati,
            "errors": self.errori,
            "pages": self.pagine,
            "notFound": sorted(self.non_trovati),
        }

    def log_riepilogo(self) -> None:
        logger.info(
            "%s concluso: %d pagine, %d creati, %d aggiornati, %d saltati, %d errori",
            self.nome, self.pagine, self.creati, self.aggiornati, self.saltati, self.errori,
        )
        if self.non_trovati:
            logger.warning("%s: %d riferimenti non trovati: %s",
                           self.nome, len(self.non_trovati), ", ".join(sorted(self.non_trovati)[:20]))


Mappatura = Callable[[dict[str, Any], EsitoImport], "dict[str, Any] | None"]


def _origine(external_id: Any) -> dict[str, Any]:
    return {"external_id": str(external_id), "source_system": SOURCE_SYSTEM}


def _importa_paginato(
    esito: EsitoImport,
    dao_cls: type[BaseDAO],
    endpoint: tuple[str, str],
    chiave: str,
    mappa: Mappatura,
    client: S2webClient,
    righe_per_pagina: int,
    pausa: float,
    **campi: Any,
) -> EsitoImport:
    for pagina, righe in client.pagine(endpoint, righe_per_pagina=righe_per_pagina, pausa=pausa, **campi):
        esito.pagine = pagina
        logger.info("%s: pagina %d, %d righe", esito.nome, pagina, len(righe))
        with db_session() as s:
            dao = dao_cls(s)
            ora = datetime.utcnow()
            for riga in righe:
                try:
                    dati = mappa(riga, esito)
                    if dati is None:
                        esito.saltati += 1
                        continue
                    dati.update(synced_at=ora, raw_payload=riga)
                    _, creato = dao.upsert(_origine(riga[chiave]), dati)
                except ERRORI_RIGA:
                    esito.errori += 1
                    logger.exception("%s: riga non valida %r", esito.nome, riga.get(chiave))
                    continue
                if creato:
                    esito.creati += 1
                else:
                    esito.aggiornati += 1
    esito.log_riepilogo()
    return esito


# =========================
# Anagrafiche
# =========================
def importa_specialita(client: S2webClient | None = None, pausa: float = 0.5) -> EsitoImport:
    def mappa(r: dict[str, Any], esito: EsitoImport) -> dict[str, Any]:
        return {"nome": r["especialidade"]}

    return _importa_paginato(
        EsitoImport("import-specialties"), SpecialitaDAO, ENDPOINT_SPECIALITA, "hii_cod_especialidade",
        mappa, client or S2webClient(), 50, pausa,
    )


def importa_medici(client: S2webClient | None = None, pausa: float = 0.1) -> EsitoImport:
    def mappa(r: dict[str, Any], esito: EsitoImport) -> dict[str, Any]:
        return {
            "nome": r["nome_completo"],
            "crm": r.get("crm") or None,
            "telefono_casa": r.get("telefone_residencial") or None,
            "telefono_ufficio": r.get("telefone_comercial") or None,
            "cellulare": r.get("celular") or None,
        }

    return _importa_paginato(
        EsitoImport("import-doctors"), MedicoDAO, ENDPOINT_MEDICI, "hid_cod_medico",
        mappa, client or S2webClient(), 300, pausa,
        letra="", especialidade="", sis_posto="", tipo_medico="T",
    )


def importa_pazienti(client: S2webClient | None = None, pausa: float = 0.5) -> EsitoImport:
    def mappa(r: dict[str, Any], esito: EsitoImport) -> dict[str, Any]:
        return {
            "nome_completo": r["nome_completo"],
            "nome_madre": r.get("nome_mae") or None,
            "documento": r.get("identidade") or None,
            "cpf": r.get("cpf") or None,
            "telefono_casa": r.get("telefone_residencial") or None,
            "cellulare": r.get("fone_celular") or None,
            "convenzione": r.get("razao_social") or None,
        }

    return _importa_paginato(
        EsitoImport("import-patients"), PazienteDAO, ENDPOINT_PAZIENTI, "hid_cod_paciente",
        mappa, client or S2webClient(), 50, pausa,
        letra="", convenios="", nome_paciente="", nome_mae="", cpf="", celular="", telefone="", data_nascimento="",
    )


def importa_procedure(client: S2webClient | None = None, pausa: float = 0.5) -> EsitoImport:
    with db_session() as s:
        specialita = {sp.nome.upper(): sp.id for sp in SpecialitaDAO(s).find_many(source_system=SOURCE_SYSTEM)}
    logger.info("Cache specialità: %d", len(specialita))

    def mappa(r: dict[str, Any], esito: EsitoImport) -> dict[str, Any]:
        nome_sp = r.get("especialidade") or ""
        specialita_id = specialita.get(nome_sp.upper())
        if specialita_id is None and nome_sp:
            esito.non_trovati.add(nome_sp)
        return {
            "nome": r["descricao"],
            "codice": r.get("sigla") or None,
            "prezzo_base": parse_prezzo_br(r.get("fnd_valor")),
            "ch": r.get("ch") or None,
            "nome_specialita": nome_sp or None,
            "specialita_id": specialita_id,
        }

    return _importa_paginato(
        EsitoImport("import-procedures"), ProceduraDAO, ENDPOINT_PROCEDURE, "hid_cod_amb",
        mappa, client or S2webClient(), 50, pausa, letra="",
    )


# =========================
# Relazioni medico-specialità
# =========================
def _a_lotti(elementi: list[Any], dimensione: int) -> Iterable[list[Any]]:
    for i in range(0, len(elementi), dimensione):
        yield elementi[i:i + dimensione]


def importa_medici_specialita(client: S2webClient | None = None, pausa: float = 1.0) -> EsitoImport:
    """
    Una richiesta per medico. Le richieste di un lotto partono in parallelo
    (un client per worker), le scritture restano nel thread principale.
    """
    client = client or S2webClient()
    esito = EsitoImport("import-doctor-specialties")

    with db_session() as s:
        specialita = {sp.external_id: sp.id for sp in SpecialitaDAO(s).find_many(source_system=SOURCE_SYSTEM)}
        medici = [
            (m.id, m.external_id, m.nome)
            for m in MedicoDAO(s).find_many(source_system=SOURCE_SYSTEM, order_by=Medico.nome.asc())
        ]

    if not medici:
        logger.warning("Nessun medico nel DB: eseguire prima import-doctors")
        return esito

    # requests.Session non è thread-safe: ogni worker usa il proprio client
    per_thread = threading.local()

    def scarica(external_id: str) -> list[dict[str, Any]]:
        if not hasattr(per_thread, "client"):
            per_thread.client = client.clona()
        dati = per_thread.client.post_json(ENDPOINT_MEDICI_SPECIALITA, cod_medico=external_id, page="1", rows="50")
        return (dati or {}).get("rows") or []

    lotti = list(_a_lotti(medici, LOTTO_MEDICI))
    with ThreadPoolExecutor(max_workers=LOTTO_MEDICI, thread_name_prefix="s2web-medici") as executor:
        for n, lotto in enumerate(lotti, start=1):
            logger.info("Lotto %d/%d", n, len(lotti))
            risposte = list(executor.map(scarica, [ext for _, ext, _ in lotto]))

            with db_session() as s:
                dao = MedicoSpecialitaDAO(s)
                for (medico_id, _, nome), righe in zip(lotto, risposte):
                    collegati = 0
                    for r in righe:
                        specialita_id = specialita.get(str(r.get("hii_id_especialidade")))
                        if specialita_id is None:
                            esito.non_trovati.add(f"{r.get('txt_especialidade')} (ID: {r.get('hii_id_especialidade')})")
                            esito.saltati += 1
                            continue
                        _, creato = dao.upsert({"medico_id": medico_id, "specialita_id": specialita_id}, {})
                        collegati += 1
                        if creato:
                            esito.creati += 1
                        else:
                            esito.aggiornati += 1
                    logger.info("  %s: %d specialità", nome, collegati)

            esito.pagine = n
            if n < len(lotti) and pausa:
                time.sleep(pausa)

    esito.log_riepilogo()
    return esito


# =========================
# Atendimenti
# =========================
def trova_utente(nome: str | None, utenti: dict[str, str]) -> str | None:
    """Match esatto sul nome normalizzato, poi contenimento in entrambe le direzioni."""
    if not nome or not nome.strip():
        return None
    cercato = normalizza_nome(nome)
    if cercato in utenti:
        return utenti[cercato]
    for nome_utente, utente_id in utenti.items():
        if cercato in nome_utente or nome_utente in cercato:
            return utente_id
    return None


def _data_ora(giorno: datetime, ora: str | None) -> datetime | None:
    if not ora:
        return None
    try:
        hh, mm = (int(x) for x in ora.strip().split(":")[:2])
        return giorno.replace(hour=hh, minute=mm)
    except ValueError:
        return None


def mappa_appuntamento(
    r: dict[str, Any],
    medici: dict[str, str],
    pazienti: dict[str, str],
    utenti: dict[str, str],
    esito: EsitoImport,
) -> dict[str, Any] | None:
    """Riga s2web -> colonne di Appuntamento. None se nessuna data è valida."""
    data = parse_data_br(r.get("dat_atendimento"))
    creazione = parse_data_br(r.get("dat_criacao"))
    if data is None:
        if creazione is None:
            logger.error(
                "Atendimento %s saltato: date non valide (dat_atendimento=%r, dat_criacao=%r)",
                r.get("hii_cod_atendimento"), r.get("dat_atendimento"), r.get("dat_criacao"),
            )
            return None
        logger.warning("Atendimento %s: usata dat_criacao come data", r.get("hii_cod_atendimento"))
        data = creazione

    medico_id = medici.get((r.get("medico") or "").upper())
    paziente_id = pazienti.get((r.get("paciente") or "").upper())
    responsabile_id = trova_utente(r.get("txt_usuario_responsavel"), utenti)
    if medico_id is None and r.get("medico"):
        esito.non_trovati.add(f"medico: {r['medico']}")
    if paziente_id is None and r.get("paciente"):
        esito.non_trovati.add(f"paciente: {r['paciente']}")

    dati: dict[str, Any] = {
        "data_appuntamento": data,
        "ora_appuntamento": r.get("hora_atendimento") or None,
        "data_ora": _data_ora(data, r.get("hora_atendimento")),
        "data_creazione": creazione,
        "convenzione": r.get("convenio") or None,
        "valore_esame": parse_centesimi(r.get("vlr_exames")),
        "valore_pagato": parse_centesimi(r.get("vlr_pago")),
        "pagato": r.get("hid_status") == "F",
        "stato": estrai_stato(r.get("statusAtend")),
        "esami_raw": r.get("exames") or None,
    }
    # le relazioni non trovate non cancellano quelle già presenti
    if medico_id:
        dati["medico_id"] = medico_id
    if paziente_id:
        dati["paziente_id"] = paziente_id
    if responsabile_id:
        dati["responsabile_id"] = responsabile_id
    return dati


def importa_appuntamenti(
    client: S2webClient | None = None,
    pausa: float = 0.1,
    inizio: str = INIZIO_ATENDIMENTI,
    fine: str = FINE_ATENDIMENTI,
) -> EsitoImport:
    with db_session() as s:
        medici = {m.nome.upper(): m.id for m in MedicoDAO(s).find_many(source_system=SOURCE_SYSTEM)}
        pazienti = {p.nome_completo.upper(): p.id for p in PazienteDAO(s).find_many(source_system=SOURCE_SYSTEM)}
        utenti = {normalizza_nome(u.nome or ""): u.id for u in UtenteDAO(s).find_many(attivo=True)}
    logger.info("Cache: %d medici, %d pazienti, %d utenti", len(medici), len(pazienti), len(utenti))
    logger.info("Periodo atendimenti: %s - %s", inizio, fine)

    def mappa(r: dict[str, Any], esito: EsitoImport) -> dict[str, Any] | None:
        return mappa_appuntamento(r, medici, pazienti, utenti, esito)

    return _importa_paginato(
        EsitoImport("import-appointments"), AppuntamentoDAO, ENDPOINT_APPUNTAMENTI, "hii_cod_atendimento",
        mappa, client or S2webClient(), 300, pausa,
        medicos="", convenios="", nome_ou_num_atend="", ini=inizio, ter=fine,
        status="", pendencia_financ="", usuario="",
    )


# =========================
# Atendimento <-> procedure
# =========================
def rimuovi_collegamenti_duplicati() -> int:
    """Per ogni coppia (atendimento, procedura) ripetuta tiene il record più vecchio."""
    AP = AppuntamentoProcedura
    rimossi = 0
    with db_session() as s:
        duplicati = s.execute(
            select(AP.appuntamento_id, AP.procedura_id)
            .group_by(AP.appuntamento_id, AP.procedura_id)
            .having(func.count(AP.id) > 1)
        ).all()
        for appuntamento_id, procedura_id in duplicati:
            righe = list(
                s.scalars(
                    select(AP)
                    .where(AP.appuntamento_id == appuntamento_id, AP.procedura_id == procedura_id)
                    .order_by(AP.created_at.asc())
                )
            )
            for r in righe[1:]:
                s.delete(r)
                rimossi += 1
    if rimossi:
        logger.warning("Rimossi %d collegamenti duplicati", rimossi)
    return rimossi


def nomi_esami(esami_raw: str | None) -> list[str]:
    return [n.strip() for n in (esami_raw or "").split(",") if n.strip()]


def importa_appuntamenti_procedure() -> EsitoImport:
    """Collega le procedure elencate in esami_raw (per nome o sigla, maiuscolo)."""
    esito = EsitoImport("import-appointment-procedures")
    rimuovi_collegamenti_duplicati()

    with db_session() as s:
        procedure: dict[str, Procedura] = {}
        for p in ProceduraDAO(s).find_many(source_system=SOURCE_SYSTEM):
            procedure[p.nome.strip().upper()] = p
            if p.codice:
                procedure[p.codice.strip().upper()] = p
        prezzi = {p.id: p.prezzo_base for p in procedure.values()}
        ids_procedura = {k: p.id for k, p in procedure.items()}
        appuntamenti = [
            (a.id, a.external_id, a.esami_raw)
            for a in AppuntamentoDAO(s).find_many(Appuntamento.esami_raw.is_not(None), source_system=SOURCE_SYSTEM)
        ]
    logger.info("%d voci procedura in cache, %d atendimenti con esami", len(ids_procedura), len(appuntamenti))

    for n, lotto in enumerate(_a_lotti(appuntamenti, LOTTO_APPUNTAMENTI), start=1):
        with db_session() as s:
            for appuntamento_id, external_id, esami_raw in lotto:
                esistenti = set(
                    s.scalars(
                        select(AppuntamentoProcedura.procedura_id).where(
                            AppuntamentoProcedura.appuntamento_id == appuntamento_id
                        )
                    )
                )
                for nome in nomi_esami(esami_raw):
                    procedura_id = ids_procedura.get(nome.upper())
                    if procedura_id is None:
                        esito.non_trovati.add(nome)
                        esito.saltati += 1
                        continue
                    if procedura_id in esistenti:
                        esito.aggiornati += 1
                        continue
                    prezzo = prezzi.get(procedura_id)
                    s.add(
                        AppuntamentoProcedura(
                            appuntamento_id=appuntamento_id,
                            procedura_id=procedura_id,
                            quantita=1,
                            prezzo_unitario=prezzo,
                            prezzo_totale=prezzo,
                        )
                    )
                    esistenti.add(procedura_id)
                    esito.creati += 1
                    logger.debug("Atendimento %s: %s", external_id, nome)
        esito.pagine = n
        logger.info("Avanzamento: %d/%d", min(n * LOTTO_APPUNTAMENTI, len(appuntamenti)), len(appuntamenti))

    esito.log_riepilogo()
    return esito


IMPORTATORI: dict[str, Callable[..., EsitoImport]] = {
    "specialties": importa_specialita,
    "doctors": importa_medici,
    "patients": importa_pazienti,
    "procedures": importa_procedure,
    "doctor-specialties": importa_medici_specialita,
    "appointments": importa_appuntamenti,
    "appointment-procedures": importa_appuntamenti_procedure,
}
