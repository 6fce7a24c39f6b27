"""
Database session and connection pool setup.

Pool parameters:
- pool_size: persistent connections (10 suits a 4-worker uvicorn)
- max_overflow: burst connections on top of pool_size
- pool_timeout: seconds to wait for a free connection
- pool_recycle: recycle period (avoids PostgreSQL idle disconnects)
- pool_pre_ping: liveness check before each checkout
"""

import logging
import time
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from app.config import settings

logger = logging.getLogger("pfdomains.db")

POOL_SIZE = int(getattr(settings, "DB_POOL_SIZE", 10))
MAX_OVERFLOW = int(getattr(settings, "DB_MAX_OVERFLOW", 20))
POOL_TIMEOUT = int(getattr(settings, "DB_POOL_TIMEOUT", 30))
POOL_RECYCLE = int(getattr(settings, "DB_POOL_RECYCLE", 1800))  # 30 minutes

# Slow query threshold (ms)
SLOW_QUERY_THRESHOLD_MS = int(getattr(settings, "SLOW_QUERY_THRESHOLD_MS", 500))


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_pre_ping": True,
        "pool_size": POOL_SIZE,
        "max_overflow": MAX_OVERFLOW,
        "pool_timeout": POOL_TIMEOUT,
        "pool_recycle": POOL_RECYCLE,
    }


engine = create_engine(settings.database_url, **_engine_kwargs(settings.database_url))


# ---------------------------------------------------------------------------
# Slow query monitoring
# ---------------------------------------------------------------------------
@event.listens_for(engine, "before_cursor_execute")
def _before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    conn.info.setdefault("query_start_time", []).append(time.perf_counter())


@event.listens_for(engine, "after_cursor_execute")
def _after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    total_ms = (time.perf_counter() - conn.info["query_start_time"].pop()) * 1000

    if total_ms >= SLOW_QUERY_THRESHOLD_MS:
        stmt_preview = statement[:500] + "..." if len(statement) > 500 else statement
        logger.warning(
            "Slow query detected",
            extra={
                "duration_ms": round(total_ms, 2),
                "statement": stmt_preview,
            },
        )


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
