"""Transaction scope helper shared by the escrow and settlement services."""
import logging
from contextlib import asynccontextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rankmatch.utils.exceptions import OperationFailedError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def unit_of_work(db: AsyncSession, *, auto_commit: bool = True, name: str = "unit_of_work"):
    """All-or-nothing scope around a block of ORM mutations.

    With ``auto_commit=True`` the block is committed on success and rolled back
    on any error. With ``auto_commit=False`` pending changes are only flushed
    and the enclosing scope owns commit/rollback.

    Storage errors are re-raised as ``OperationFailedError``; domain errors
    propagate unchanged.

    Args:
        db: Database session
        auto_commit: If True, commits on exit. If False, caller must commit.
        name: Label used in log messages
    """
    try:
        yield db
        if auto_commit:
            await db.commit()
        else:
            await db.flush()
    except SQLAlchemyError as exc:
        logger.error(f"{name} failed at the storage layer, rolling back: {exc}")
        if auto_commit:
            await db.rollback()
        raise OperationFailedError() from exc
    except Exception:
        if auto_commit:
            await db.rollback()
        raise
