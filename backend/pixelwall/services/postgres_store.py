# backend/pixelwall/services/postgres_store.py

import threading
from contextlib import contextmanager
from typing import Any, Iterator

import psycopg2
from psycopg2 import errorcodes, sql
from psycopg2.pool import PoolError, ThreadedConnectionPool
from loguru import logger

from pixelwall.exceptions import (
    LockTimeoutError,
    StoreUnavailableError,
    TransientStoreError,
)
from pixelwall.models.advertisement import (
    MUTABLE_FIELDS,
    Advertisement,
    AdStatus,
    NewAdvertisement,
)
from pixelwall.services.rectangle_store import RectangleStore, StoreTransaction

# Advisory lock that guards the load -> decide -> write section of the wall
WALL_WRITER_LOCK_KEY = 7_100_100

AD_COLUMNS = (
    "id, x, y, width, height, status, price, business_name, description, "
    "image_url, target_url, alt, created_at, updated_at"
)

# Aborts worth retrying: the next attempt sees a fresh committed state
TRANSIENT_PGCODES = {
    errorcodes.SERIALIZATION_FAILURE,
    errorcodes.DEADLOCK_DETECTED,
    errorcodes.EXCLUSION_VIOLATION,
}


def _row_to_ad(row) -> Advertisement:
    return Advertisement(
        id=row[0],
        x=row[1],
        y=row[2],
        width=row[3],
        height=row[4],
        status=AdStatus(row[5]),
        price=int(row[6]),
        business_name=row[7],
        description=row[8],
        image_url=row[9],
        target_url=row[10],
        alt=row[11],
        created_at=row[12],
        updated_at=row[13],
    )


def translate_error(exc: psycopg2.Error) -> Exception:
    """Maps a psycopg2 error to the store error the service understands."""
    if exc.pgcode == errorcodes.LOCK_NOT_AVAILABLE:
        return LockTimeoutError("Timed out waiting for the wall writer lock")
    if exc.pgcode in TRANSIENT_PGCODES:
        return TransientStoreError(f"Transaction aborted ({exc.pgcode})")
    return StoreUnavailableError("Rectangle store is unavailable")


class PostgresTransaction(StoreTransaction):
    def __init__(self, cur):
        self._cur = cur

    def load_active_rectangles(self) -> list[Advertisement]:
        self._cur.execute(
            f"""
            SELECT {AD_COLUMNS}
            FROM ads
            WHERE status = %s
            ORDER BY y, x;
            """,
            (AdStatus.ACTIVE.value,),
        )
        return [_row_to_ad(row) for row in self._cur.fetchall()]

    def list_active(self) -> list[Advertisement]:
        self._cur.execute(
            f"""
            SELECT {AD_COLUMNS}
            FROM ads
            WHERE status = %s
            ORDER BY created_at DESC, id DESC;
            """,
            (AdStatus.ACTIVE.value,),
        )
        return [_row_to_ad(row) for row in self._cur.fetchall()]

    def get_rectangle(self, ad_id: int) -> Advertisement | None:
        self._cur.execute(
            f"""
            SELECT {AD_COLUMNS}
            FROM ads
            WHERE id = %s;
            """,
            (ad_id,),
        )
        row = self._cur.fetchone()
        if row is None:
            return None
        return _row_to_ad(row)

    def insert_rectangle(self, data: NewAdvertisement) -> Advertisement:
        self._cur.execute(
            f"""
            INSERT INTO ads (x, y, width, height, business_name, description,
                             image_url, target_url, alt, price, status)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING {AD_COLUMNS};
            """,
            (
                data.x,
                data.y,
                data.width,
                data.height,
                data.business_name,
                data.description,
                data.image_url,
                data.target_url,
                data.alt,
                data.price,
                AdStatus.ACTIVE.value,
            ),
        )
        return _row_to_ad(self._cur.fetchone())

    def update_rectangle(self, ad_id: int, fields: dict[str, Any]) -> Advertisement | None:
        changes = [(k, v) for k, v in fields.items() if k in MUTABLE_FIELDS]

        assignments = [
            sql.SQL("{} = %s").format(sql.Identifier(column)) for column, _ in changes
        ]
        assignments.append(sql.SQL("updated_at = now()"))

        query = sql.SQL(
            "UPDATE ads SET {} WHERE id = %s AND status <> %s RETURNING {};"
        ).format(sql.SQL(", ").join(assignments), sql.SQL(AD_COLUMNS))

        params = [value for _, value in changes] + [ad_id, AdStatus.REMOVED.value]
        self._cur.execute(query, params)

        row = self._cur.fetchone()
        if row is None:
            return None
        return _row_to_ad(row)

    def soft_delete_rectangle(self, ad_id: int) -> bool:
        self._cur.execute(
            """
            UPDATE ads
            SET status = %s, updated_at = now()
            WHERE id = %s AND status = %s
            RETURNING id;
            """,
            (AdStatus.REMOVED.value, ad_id, AdStatus.ACTIVE.value),
        )
        return self._cur.fetchone() is not None


class PostgresRectangleStore(RectangleStore):
    """
    Store backed by PostgreSQL through a psycopg2 connection pool.

    Write transactions take a transaction-scoped advisory lock, so only
    one writer runs load -> decide -> write at a time. Waiting for it is
    bounded by `lock_timeout`; the lock is released on commit/rollback.

    Callers beyond `maxconn` queue for a free connection instead of
    failing; that wait is bounded by `lock_timeout` as well.
    """

    def __init__(
        self,
        dsn_kwargs: dict[str, Any],
        minconn: int = 1,
        maxconn: int = 10,
        lock_timeout: float = 5.0,
    ):
        self._dsn_kwargs = dsn_kwargs
        self._minconn = minconn
        self._maxconn = maxconn
        self.lock_timeout = lock_timeout
        self._pool: ThreadedConnectionPool | None = None
        self._slots = threading.BoundedSemaphore(maxconn)

    def open(self) -> None:
        if self._pool is not None:
            return
        try:
            self._pool = ThreadedConnectionPool(self._minconn, self._maxconn, **self._dsn_kwargs)
        except psycopg2.Error as exc:
            logger.error(f"Could not open the PostgreSQL pool: {exc}")
            raise StoreUnavailableError("Rectangle store is unavailable") from exc
        logger.info(
            f"PostgreSQL rectangle store opened "
            f"({self._dsn_kwargs.get('host')}:{self._dsn_kwargs.get('port')})"
        )

    def close(self) -> None:
        if self._pool is None:
            return
        self._pool.closeall()
        self._pool = None
        logger.info("PostgreSQL rectangle store closed")

    def _enter_writer_scope(self, cur) -> None:
        timeout_ms = max(int(self.lock_timeout * 1000), 1)
        cur.execute("SELECT set_config('lock_timeout', %s, true);", (f"{timeout_ms}ms",))
        cur.execute("SELECT pg_advisory_xact_lock(%s);", (WALL_WRITER_LOCK_KEY,))

    @staticmethod
    def _rollback(conn) -> None:
        try:
            conn.rollback()
        except psycopg2.Error as exc:
            logger.warning(f"Rollback failed on a broken connection: {exc}")

    @contextmanager
    def transaction(self, write: bool = False) -> Iterator[StoreTransaction]:
        if self._pool is None:
            raise StoreUnavailableError("Rectangle store is not open")

        if not self._slots.acquire(timeout=self.lock_timeout):
            raise LockTimeoutError("Timed out waiting for a free PostgreSQL connection")
        try:
            conn = self._getconn()
            try:
                with conn.cursor() as cur:
                    if write:
                        self._enter_writer_scope(cur)
                    yield PostgresTransaction(cur)
                conn.commit()
            except psycopg2.Error as exc:
                self._rollback(conn)
                translated = translate_error(exc)
                if isinstance(translated, StoreUnavailableError):
                    logger.error(f"PostgreSQL error: {exc}")
                raise translated from exc
            except BaseException:
                self._rollback(conn)
                raise
            finally:
                self._pool.putconn(conn, close=bool(conn.closed))
        finally:
            self._slots.release()

    def _getconn(self):
        try:
            return self._pool.getconn()
        except PoolError as exc:
            # pool exhausted by connections checked out elsewhere
            raise TransientStoreError(f"No free PostgreSQL connection: {exc}") from exc
        except psycopg2.Error as exc:
            logger.error(f"Could not get a PostgreSQL connection: {exc}")
            raise StoreUnavailableError("Rectangle store is unavailable") from exc
