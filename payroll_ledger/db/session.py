"""
Async SQLAlchemy engine, session factory and unit-of-work scope (asyncpg driver).
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from payroll_ledger.core.config import settings
from payroll_ledger.core.exceptions import ConflictError, LedgerError, StorageError

logger = logging.getLogger(__name__)

engine_args = {
    "echo": False,
    "pool_pre_ping": True,
}

if "postgresql" in settings.DATABASE_URL:
    engine_args.update(
        {
            "pool_size": 20,
            "max_overflow": 10,
            "pool_recycle": 300,
        }
    )

engine = create_async_engine(
    settings.DATABASE_URL,
    **engine_args,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


@asynccontextmanager
async def unit_of_work(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """Run the enclosed block as one transaction.

    Commits exactly once when the block finishes and rolls back exactly once
    when anything inside it raises. Ledger errors propagate unchanged;
    constraint violations surface as ``ConflictError`` and any other store
    failure as ``StorageError``.
    """
    try:
        yield session
        await session.commit()
    except LedgerError:
        await session.rollback()
        raise
    except IntegrityError as exc:
        await session.rollback()
        logger.warning("Constraint violation rolled back: %s", exc.orig)
        raise ConflictError("La operación entra en conflicto con otro cambio concurrente.") from exc
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.error("Transaction rolled back after storage failure", exc_info=True)
        raise StorageError() from exc
    except BaseException:
        await session.rollback()
        raise
