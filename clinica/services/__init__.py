"""Logica applicativa: ogni funzione apre la propria sessione e ritorna dict serializzabili."""
