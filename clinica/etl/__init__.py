"""
Importazione dati esterni.

- client.py       : client HTTP del sistema legacy s2web
- parsing.py      : conversioni dei formati legacy
- importatori.py  : upsert delle anagrafiche e degli atendimenti
- sync.py         : sincronizzazione completa in ordine di dipendenza
- spese_excel.py  : import delle spese dal foglio Excel
- manutenzione.py : pulizia e analisi delle spese
"""
