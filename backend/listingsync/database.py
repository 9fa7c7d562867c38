from sqlalchemy import create_engine, text, event
from sqlalchemy.orm import sessionmaker, declarative_base
from listingsync.config import get_settings
import logging

logger = logging.getLogger(__name__)
settings = get_settings()

db_url = settings.database_url

engine = create_engine(
    db_url,
    connect_args={"check_same_thread": False} if db_url.startswith("sqlite") else {},
)


def enable_sqlite_foreign_keys(target_engine):
    """ON DELETE CASCADE is a no-op in SQLite unless this pragma is set per connection."""
    if target_engine.dialect.name != "sqlite":
        return

    @event.listens_for(target_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


enable_sqlite_foreign_keys(engine)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# SQLAlchemy type name -> SQLite column type; strings fall back to VARCHAR/TEXT
SQLITE_AFFINITY = {
    "Integer": "INTEGER",
    "BigInteger": "INTEGER",
    "SmallInteger": "INTEGER",
    "Float": "REAL",
    "Numeric": "NUMERIC",
    "Boolean": "BOOLEAN",
    "DateTime": "DATETIME",
    "JSON": "JSON",
}

# Fill value for NOT NULL columns that declare no literal default
SQLITE_ZERO = {"INTEGER": "0", "REAL": "0.0", "NUMERIC": "0", "BOOLEAN": "0"}


def _sql_literal(value) -> str | None:
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float)):
        return str(value)
    if hasattr(value, "value"):  # enum members
        value = value.value
    if isinstance(value, str):
        return "'" + value.replace("'", "''") + "'"
    return None


def add_column_ddl(table_name: str, column) -> str:
    """ALTER TABLE statement adding `column` to an existing SQLite table."""
    length = getattr(column.type, "length", None)
    affinity = SQLITE_AFFINITY.get(type(column.type).__name__)
    if affinity is None:
        affinity = f"VARCHAR({length})" if length else "TEXT"

    literal = None
    if column.default is not None and not callable(column.default.arg):
        literal = _sql_literal(column.default.arg)

    ddl = f"ALTER TABLE {table_name} ADD COLUMN {column.name} {affinity}"
    if not column.nullable:
        # SQLite rejects ADD COLUMN ... NOT NULL without a DEFAULT
        fill = literal or SQLITE_ZERO.get(affinity, "''")
        ddl += f" NOT NULL DEFAULT {fill}"
    elif literal is not None:
        ddl += f" DEFAULT {literal}"
    return ddl


def ensure_sqlite_columns(target_engine=None) -> int:
    """
    Bring SQLite tables up to the model metadata by adding missing columns.

    Only covers additive changes on local SQLite files; PostgreSQL schemas
    are managed by the Alembic revisions. Returns the number of columns added.
    """
    target_engine = target_engine or engine
    statements = []
    with target_engine.begin() as conn:
        for table in Base.metadata.sorted_tables:
            present = {row[1] for row in conn.execute(text(f"PRAGMA table_info({table.name})"))}
            if not present:
                continue  # table not created yet
            statements.extend(
                add_column_ddl(table.name, column)
                for column in table.columns
                if column.name not in present
            )
        for ddl in statements:
            conn.execute(text(ddl))
            logger.info(ddl)

    if statements:
        logger.info(f"SQLite schema sync added {len(statements)} column(s)")
    return len(statements)
