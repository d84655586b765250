"""
Back-office della clinica: API di metriche e import dal sistema legacy s2web.

Struttura:
- config.py    : configurazione da variabili d'ambiente (.env)
- db.py        : engine e sessioni SQLAlchemy
- models.py    : modelli ORM del dominio clinico
- auth_*.py    : utenti, hash password, JWT
- dao/         : accesso ai dati, una classe per tabella
- fatturato.py : regola di calcolo del fatturato
- periodi.py   : date e intervalli
- services/    : metriche e CRUD usati dall'API
- api/         : router FastAPI
- etl/         : importatori s2web, sync, spese da Excel
- cli.py       : comandi da terminale
"""
