"""
Wagerline — Ledger & Settlement Engine for an Online Gaming Platform
=====================================================================
Receives settlement callbacks from game providers, applies them to player
wallets exactly once, and keeps the derived financial state (wagering
requirements, affiliate commissions, VIP tiers) consistent with the ledger.

Package layout::

    wagerline/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Money quantization + shared limits
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine, session helper, async bridge
    │   ├── models.py      # All ORM models
    │   └── seed.py        # Default settings + VIP ladder seeder
    ├── engine/            # Pure logic, no I/O
    │   ├── errors.py      # LedgerError hierarchy
    │   ├── events.py      # Settlement event variants + callback parser
    │   ├── snapshot.py    # Immutable platform settings snapshot
    │   ├── rollover.py    # FIFO wagering allocation
    │   ├── affiliate.py   # CPA level amounts
    │   └── vip.py         # Tier upgrade planning
    ├── services/          # Unit-of-work operations against the database
    │   ├── account_store.py      # Atomic balance increments / decrements
    │   ├── settlement_service.py # Idempotent provider callback processor
    │   ├── deposit_service.py    # Deposit confirmation path
    │   ├── ...
    ├── jobs/              # APScheduler wiring + one-shot job runner
    └── api/
        ├── main.py        # FastAPI app
        └── routes/        # Webhooks + account endpoints
"""

__version__ = "0.1.0"
