"""Unit of work over a SQLAlchemy session: one database transaction per ledger operation"""

from contextlib import contextmanager
from typing import Iterator
from sqlalchemy.orm import sessionmaker
from telemed_core.infrastructure.database.repositories import SqlLedgerStore


class SqlAlchemyUnitOfWork:
    """Callable that opens a session, yields a SqlLedgerStore, then commits or rolls back"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    @contextmanager
    def __call__(self) -> Iterator[SqlLedgerStore]:
        db = self.session_factory()
        try:
            yield SqlLedgerStore(db)
            db.commit()
        except BaseException:
            db.rollback()
            raise
        finally:
            db.close()
