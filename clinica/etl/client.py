"""
Client HTTP per il sistema legacy s2web.

Tutti gli endpoint sono POST con corpo form-urlencoded e autenticazione via
cookie di sessione + coppia cod_usuario/token. Le liste sono paginate con
`page`/`rows`: una risposta vuota o non-JSON indica la fine delle pagine.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Iterator

import requests

from clinica.config import S2WEB_BASE_URL, S2WEB_COD_USUARIO, S2WEB_COOKIE, S2WEB_TIMEOUT, S2WEB_TOKENS

logger = logging.getLogger(__name__)

# percorso relativo, chiave del token in S2WEB_TOKENS
ENDPOINT_SPECIALITA = ("modules/medicos_especialidade/esp_listagem.php", "cadastro")
ENDPOINT_PROCEDURE = ("modules/medicos_especialidade/procedimentos_visualizacao.php", "cadastro")
ENDPOINT_MEDICI = ("modules/medicos/medicos_visualizacao.php", "atendimentos")
ENDPOINT_MEDICI_SPECIALITA = ("modules/medicos/especializacao_visualizacao.php", "cadastro")
ENDPOINT_PAZIENTI = ("modules/pacientes/pacientes_visualizacao.php", "pacientes")
ENDPOINT_APPUNTAMENTI = ("modules/atendimentos/atendimentos_visualizacao.php", "atendimentos")
ENDPOINT_COMPLEANNI = "modules/pacientes/niver_listagem.php"


class S2webError(RuntimeError):
    pass


class S2webClient:
    def __init__(
        self,
        base_url: str = S2WEB_BASE_URL,
        cookie: str = S2WEB_COOKIE,
        cod_usuario: str = S2WEB_COD_USUARIO,
        tokens: dict[str, str] | None = None,
        timeout: float = S2WEB_TIMEOUT,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.cod_usuario = cod_usuario
        self.tokens = tokens if tokens is not None else dict(S2WEB_TOKENS)
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Accept": "application/json, text/javascript, */*; q=0.01",
                "Content-Type": "application/x-www-form-urlencoded; charset=UTF-8",
                "X-Requested-With": "XMLHttpRequest",
                "Origin": self.base_url.rsplit("/", 1)[0],
                "Referer": f"{self.base_url}/index.php",
            }
        )
        if cookie:
            self.session.headers["Cookie"] = cookie

    def clona(self) -> "S2webClient":
        """Stessa configurazione su una nuova requests.Session (una per thread)."""
        nuovo = S2webClient(self.base_url, "", self.cod_usuario, dict(self.tokens), self.timeout)
        nuovo.session.headers.update(self.session.headers)
        return nuovo

    def post(self, percorso: str, dati: dict[str, Any]) -> requests.Response:
        url = f"{self.base_url}/{percorso}"
        try:
            resp = self.session.post(url, data=dati, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise S2webError(f"Errore HTTP verso {url}: {e}") from e
        return resp

    def post_json(self, endpoint: tuple[str, str], **campi: Any) -> dict[str, Any] | None:
        """
        POST autenticato. Ritorna None se la risposta è vuota o non è JSON
        (il sistema legacy risponde così oltre l'ultima pagina).
        """
        percorso, chiave_token = endpoint
        dati = {"cod_usuario": self.cod_usuario, "token": self.tokens.get(chiave_token, ""), **campi}
        resp = self.post(percorso, dati)
        if not resp.text or not resp.text.strip():
            return None
        try:
            return resp.json()
        except ValueError:
            return None

    def pagine(
        self,
        endpoint: tuple[str, str],
        righe_per_pagina: int = 50,
        pausa: float = 0.5,
        **campi: Any,
    ) -> Iterator[tuple[int, list[dict[str, Any]]]]:
        """Itera (numero_pagina, righe) finché il sistema restituisce righe."""
        pagina = 1
        while True:
            logger.info("s2web %s: pagina %d", endpoint[0], pagina)
            dati = self.post_json(endpoint, page=str(pagina), rows=str(righe_per_pagina), **campi)
            righe = (dati or {}).get("rows") or []
            if not righe:
                logger.info("s2web %s: nessuna altra pagina", endpoint[0])
                return
            yield pagina, righe
            pagina += 1
            if pausa:
                time.sleep(pausa)

    def html(self, percorso: str, dati: dict[str, Any]) -> str:
        return self.post(percorso, dati).text
