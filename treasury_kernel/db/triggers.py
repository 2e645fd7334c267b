"""
Module: treasury_kernel.db.triggers
Responsibility: Installing, removing and verifying database-level
    append-only triggers (immutability layer 2 of 2).  This is the
    database-level complement to the ORM-level listeners in
    db/immutability.py.
Architecture position: Kernel > DB.  May import from db/ only.  MUST NOT
    import from models/, services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - treasury_transactions rows: no UPDATE, no DELETE.
    - treasury_bank_transfers rows: no UPDATE, no DELETE.
    - treasury_daily_verifications rows: no UPDATE, no DELETE.
    - treasury_balance_snapshots rows: no DELETE.

Failure modes:
    - PostgreSQL RAISE EXCEPTION / SQLite RAISE(ABORT) on any violation
      (surfaced by SQLAlchemy as InternalError, IntegrityError or
      OperationalError depending on driver).
    - OperationalError on deadlock during installation (caller retries).

Audit relevance:
    Even if the ORM layer is bypassed (raw SQL, bulk operations, direct
    psql/sqlite3 access), the database refuses to rewrite ledger history.
"""

from sqlalchemy import text
from sqlalchemy.engine import Engine

# (trigger name, table, operation)
APPEND_ONLY_TRIGGERS: tuple[tuple[str, str, str], ...] = (
    ("trg_treasury_transaction_immutability_update", "treasury_transactions", "UPDATE"),
    ("trg_treasury_transaction_immutability_delete", "treasury_transactions", "DELETE"),
    ("trg_treasury_bank_transfer_immutability_update", "treasury_bank_transfers", "UPDATE"),
    ("trg_treasury_bank_transfer_immutability_delete", "treasury_bank_transfers", "DELETE"),
    ("trg_treasury_verification_immutability_update", "treasury_daily_verifications", "UPDATE"),
    ("trg_treasury_verification_immutability_delete", "treasury_daily_verifications", "DELETE"),
    ("trg_treasury_balance_snapshot_delete", "treasury_balance_snapshots", "DELETE"),
)

ALL_TRIGGER_NAMES = [name for name, _, _ in APPEND_ONLY_TRIGGERS]

_PG_FUNCTION_NAME = "treasury_reject_history_rewrite"

_PG_FUNCTION_SQL = f"""
CREATE OR REPLACE FUNCTION {_PG_FUNCTION_NAME}() RETURNS trigger AS $$
BEGIN
    RAISE EXCEPTION 'IMMUTABILITY_VIOLATION: append-only ledger row'
        USING DETAIL = TG_OP || ' on ' || TG_TABLE_NAME || ' is not allowed';
END;
$$ LANGUAGE plpgsql
"""


def _postgres_install_statements() -> list[str]:
    statements = [_PG_FUNCTION_SQL]
    for name, table, operation in APPEND_ONLY_TRIGGERS:
        statements.append(f"DROP TRIGGER IF EXISTS {name} ON {table}")
        statements.append(
            f"CREATE TRIGGER {name} BEFORE {operation} ON {table} "
            f"FOR EACH ROW EXECUTE FUNCTION {_PG_FUNCTION_NAME}()"
        )
    return statements


def _postgres_drop_statements() -> list[str]:
    statements = [
        f"DROP TRIGGER IF EXISTS {name} ON {table}"
        for name, table, _ in APPEND_ONLY_TRIGGERS
    ]
    statements.append(f"DROP FUNCTION IF EXISTS {_PG_FUNCTION_NAME}() CASCADE")
    return statements


def _sqlite_install_statements() -> list[str]:
    return [
        f"CREATE TRIGGER IF NOT EXISTS {name} BEFORE {operation} ON {table} "
        f"BEGIN SELECT RAISE(ABORT, 'IMMUTABILITY_VIOLATION: {operation} on {table} "
        f"is not allowed (append-only ledger)'); END"
        for name, table, operation in APPEND_ONLY_TRIGGERS
    ]


def _sqlite_drop_statements() -> list[str]:
    return [f"DROP TRIGGER IF EXISTS {name}" for name in ALL_TRIGGER_NAMES]


def _statements_for(engine: Engine, install: bool) -> list[str]:
    if engine.dialect.name == "sqlite":
        return _sqlite_install_statements() if install else _sqlite_drop_statements()
    return _postgres_install_statements() if install else _postgres_drop_statements()


# =============================================================================
# Public API
# =============================================================================


def install_immutability_triggers(engine: Engine) -> None:
    """
    Install database-level append-only triggers.

    Preconditions: Tables must exist (call after Base.metadata.create_all()).
    Postconditions: All triggers in ALL_TRIGGER_NAMES are installed.
        Installation is idempotent.

    Args:
        engine: SQLAlchemy engine connected to PostgreSQL or SQLite.
    """
    with engine.begin() as conn:
        for statement in _statements_for(engine, install=True):
            conn.exec_driver_sql(statement)


def uninstall_immutability_triggers(engine: Engine) -> None:
    """
    Remove database-level append-only triggers.

    WARNING: Only use this in tests or for migrations that must touch
    historical rows.  Re-install triggers IMMEDIATELY afterwards.

    Args:
        engine: SQLAlchemy engine connected to PostgreSQL or SQLite.
    """
    with engine.begin() as conn:
        for statement in _statements_for(engine, install=False):
            conn.exec_driver_sql(statement)


def triggers_installed(engine: Engine) -> bool:
    """Check whether all append-only triggers are installed."""
    return not missing_triggers(engine)


def missing_triggers(engine: Engine) -> list[str]:
    """
    Return the names of expected triggers that are not installed.

    Postconditions: Empty list iff every trigger in ALL_TRIGGER_NAMES exists.
    """
    if engine.dialect.name == "sqlite":
        query = text("SELECT name FROM sqlite_master WHERE type = 'trigger'")
    else:
        query = text("SELECT tgname FROM pg_trigger WHERE NOT tgisinternal")

    with engine.connect() as conn:
        installed = {row[0] for row in conn.execute(query)}

    return [name for name in ALL_TRIGGER_NAMES if name not in installed]
