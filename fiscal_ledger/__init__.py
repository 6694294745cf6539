"""fiscal-ledger.

Ledger and search-synchronization backend for a fiscal-hosting platform, where
hosts hold funds on behalf of collectives and account for every movement in a
double-entry ledger.

High-level architecture
-----------------------

The codebase is organized around two subsystems:

- **Ledger** (``fiscal_ledger.ledger``): every economic event is written as
  paired CREDIT/DEBIT rows sharing a ``transaction_group``. Fees, taxes and
  platform tips are split out of a contribution into their own pairs, debts
  owed to the platform are tracked through settlements, and refunds propagate
  to every split pair.
- **Search sync** (``fiscal_ledger.search``): Postgres triggers publish row
  changes through LISTEN/NOTIFY, and a debounced batch processor mirrors them
  into OpenSearch with bulk requests.

Core subpackages
----------------

- ``fiscal_ledger.core``: logging, monitoring and the database layer
  (entities and repositories).
- ``fiscal_ledger.ledger``: double entry, fee splitting, refunds, settlements,
  export transforms and the split migrations.
- ``fiscal_ledger.search``: adapters, batch processor, Postgres sync, index
  management and querying.
- ``fiscal_ledger.server``: FastAPI application.
- ``fiscal_ledger.cli``: maintenance commands.
"""
