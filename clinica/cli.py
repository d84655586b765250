from __future__ import annotations

import argparse
import getpass
import json

from clinica.auth_models import RuoloUtente
from clinica.auth_service import crea_utente
from clinica.config import EXPENSES_XLSX, LOG_JSON, LOG_LEVEL
from clinica.db import init_db, reset_db
from clinica.etl.importatori import FINE_ATENDIMENTI, INIZIO_ATENDIMENTI, IMPORTATORI, importa_appuntamenti
from clinica.etl.manutenzione import aggiungi_spese_di_prova, conta_categorie_db, formatta_categorie, svuota_spese
from clinica.etl.spese_excel import conta_categorie_foglio, importa_spese
from clinica.etl.sync import esegui_sync
from clinica.logging_config import setup_logging
from clinica.seed import seed_admin


def cmd_init(args: argparse.Namespace) -> None:
    if args.reset:
        reset_db()
    else:
        init_db()
    creato = seed_admin()
    print("DB inizializzato." + (" Utente admin creato." if creato else ""))


def cmd_create_admin(args: argparse.Namespace) -> None:
    password = args.password or getpass.getpass("Password: ")
    u = crea_utente(args.email, args.nome, password, RuoloUtente(args.ruolo))
    print(f"Utente creato: {u['id']} | {u['email']} | {u['role']}")


def cmd_import(args: argparse.Namespace) -> None:
    if args.nome == "appointments":
        esito = importa_appuntamenti(inizio=args.inizio, fine=args.fine)
    else:
        esito = IMPORTATORI[args.nome]()
    print(json.dumps(esito.as_dict(), ensure_ascii=False, indent=2))


def cmd_sync_all(args: argparse.Namespace) -> None:
    esito = esegui_sync()
    print(json.dumps(esito, ensure_ascii=False, indent=2))
    if not esito["success"]:
        raise SystemExit(1)


def cmd_import_expenses(args: argparse.Namespace) -> None:
    esito = importa_spese(args.file)
    print(f"Importazione completata: {esito['imported']}/{esito['total']} spese.")


def cmd_clear_expenses(args: argparse.Namespace) -> None:
    rimosse = svuota_spese()
    print(f"Spese rimosse: {rimosse}" if rimosse else "Nessuna spesa da rimuovere.")


def _stampa_categorie(conteggi: list[tuple[str, int]]) -> None:
    if not conteggi:
        print("Nessuna categoria trovata.")
        return
    print(f"Categorie distinte: {len(conteggi)}")
    for riga in formatta_categorie(conteggi):
        print(riga)


def cmd_analyze_expense_categories(args: argparse.Namespace) -> None:
    _stampa_categorie(conta_categorie_foglio(args.file))


def cmd_analyze_db_categories(args: argparse.Namespace) -> None:
    _stampa_categorie(conta_categorie_db())


def cmd_add_mock_expenses(args: argparse.Namespace) -> None:
    n = aggiungi_spese_di_prova()
    print(f"{n} spese di prova create.")


def cmd_serve(args: argparse.Namespace) -> None:
    import uvicorn

    uvicorn.run("clinica.api_main:app", host=args.host, port=args.port, reload=args.reload)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="clinica", description="CLI back-office clinica (DB, import s2web, spese)")
    sub = p.add_subparsers(required=True)

    p_init = sub.add_parser("init", help="Crea le tabelle e l'admin configurato")
    p_init.add_argument("--reset", action="store_true", help="Elimina e ricrea le tabelle (cancella i dati)")
    p_init.set_defaults(func=cmd_init)

    p_admin = sub.add_parser("create-admin", help="Crea un utente")
    p_admin.add_argument("--email", required=True)
    p_admin.add_argument("--nome", default="Administrador")
    p_admin.add_argument("--password", default=None, help="Se omessa viene chiesta a terminale")
    p_admin.add_argument("--ruolo", choices=[r.value for r in RuoloUtente], default=RuoloUtente.ADMIN.value)
    p_admin.set_defaults(func=cmd_create_admin)

    p_imp = sub.add_parser("import", help="Esegue un singolo importatore s2web")
    p_imp.add_argument("nome", choices=list(IMPORTATORI))
    p_imp.add_argument("--inizio", default=INIZIO_ATENDIMENTI, help="Solo appointments, dd/mm/yyyy")
    p_imp.add_argument("--fine", default=FINE_ATENDIMENTI, help="Solo appointments, dd/mm/yyyy")
    p_imp.set_defaults(func=cmd_import)

    p_sync = sub.add_parser("sync-all", help="Sincronizzazione completa con s2web")
    p_sync.set_defaults(func=cmd_sync_all)

    p_exp = sub.add_parser("import-expenses", help="Importa le spese dal foglio Excel")
    p_exp.add_argument("--file", default=EXPENSES_XLSX)
    p_exp.set_defaults(func=cmd_import_expenses)

    p_clear = sub.add_parser("clear-expenses", help="Elimina tutte le spese")
    p_clear.set_defaults(func=cmd_clear_expenses)

    p_an_x = sub.add_parser("analyze-expense-categories", help="Categorie presenti nel foglio Excel")
    p_an_x.add_argument("--file", default=EXPENSES_XLSX)
    p_an_x.set_defaults(func=cmd_analyze_expense_categories)

    p_an_db = sub.add_parser("analyze-db-categories", help="Categorie delle spese salvate")
    p_an_db.set_defaults(func=cmd_analyze_db_categories)

    p_mock = sub.add_parser("add-mock-expenses", help="Inserisce spese di prova (Janeiro/2026)")
    p_mock.set_defaults(func=cmd_add_mock_expenses)

    p_serve = sub.add_parser("serve", help="Avvia l'API (uvicorn)")
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=8000)
    p_serve.add_argument("--reload", action="store_true")
    p_serve.set_defaults(func=cmd_serve)

    return p


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(use_json=LOG_JSON, log_level=LOG_LEVEL)
    init_db()  # garantisce tabelle
    args.func(args)


if __name__ == "__main__":
    main()
