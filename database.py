"""Engine and session ownership.

A ``Database`` is opened once at process start, handed to whoever needs
storage, and closed at shutdown. ``session_scope`` is the single place where
a unit of work is committed or rolled back.
"""
import logging
import threading
from contextlib import contextmanager, nullcontext

from sqlalchemy import create_engine, event
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from errors import ShopError, Conflict, StorageFailure
from models_sql import Base

logger = logging.getLogger(__name__)

MEMORY_URLS = ('sqlite://', 'sqlite:///:memory:')


class Database:

    def __init__(self, url, busy_timeout=30.0, echo=False):
        self.url = url
        self.is_sqlite = url.startswith('sqlite')
        self.is_memory = url in MEMORY_URLS
        self.engine = create_engine(url, echo=echo, **self._engine_options(url, busy_timeout))
        if self.is_sqlite:
            self._install_sqlite_hooks()
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=self.engine)
        # every session of an in-memory database shares one connection, so units
        # of work must not interleave across threads
        self._lock = threading.RLock() if self.is_memory else nullcontext()

    @staticmethod
    def _engine_options(url, busy_timeout):
        if not url.startswith('sqlite'):
            return {'pool_pre_ping': True}
        options = {'connect_args': {'check_same_thread': False, 'timeout': busy_timeout}}
        if url in MEMORY_URLS:
            # one shared connection, otherwise every checkout sees an empty database
            options['poolclass'] = StaticPool
        return options

    def _install_sqlite_hooks(self):
        # pysqlite's own BEGIN handling is disabled so that every transaction
        # takes the write lock up front (BEGIN IMMEDIATE); concurrent writers
        # then wait on the busy timeout instead of failing a lock upgrade.
        @event.listens_for(self.engine, "connect")
        def _on_connect(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(self.engine, "begin")
        def _on_begin(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    def create_all(self):
        Base.metadata.create_all(bind=self.engine)

    def drop_all(self):
        Base.metadata.drop_all(bind=self.engine)

    def close(self):
        self.engine.dispose()

    @contextmanager
    def session_scope(self):
        """Yield a session; commit on success, roll back on any failure.

        Driver errors are translated: integrity violations become ``Conflict``,
        anything else from SQLAlchemy becomes ``StorageFailure``.
        """
        with self._lock:
            session = self.SessionLocal()
            try:
                yield session
                session.commit()
            except ShopError:
                session.rollback()
                raise
            except IntegrityError as exc:
                session.rollback()
                logger.warning("Integrity violation, transaction rolled back: %s", exc.orig)
                raise Conflict("Constraint violated: %s" % exc.orig) from exc
            except SQLAlchemyError as exc:
                session.rollback()
                logger.exception("Storage failure, transaction rolled back")
                raise StorageFailure() from exc
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

