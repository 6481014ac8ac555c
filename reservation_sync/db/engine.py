"""
SQLAlchemy engine singleton with production-ready connection pooling.

Services never import this module directly; they receive an Engine from
``reservation_sync.dependencies`` or from the job entry point so tests can
hand in their own.
"""

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from reservation_sync.config import DATABASE_URL

if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL is not set.")

engine: Engine = create_engine(
    DATABASE_URL,
    future=True,
    pool_size=10,
    max_overflow=20,
    pool_pre_ping=True,  # Verify connections before using (detect stale connections)
    pool_recycle=3600,
    echo=False,
)


def check_engine_health(db_engine: Engine = engine) -> bool:
    """
    Check if database engine is healthy and connections are working.

    Used by the /ready endpoint before allowing traffic to the service.

    Returns:
        bool: True if database is reachable and healthy, False otherwise
    """
    try:
        with db_engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False
