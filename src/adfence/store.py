"""
PostgreSQL/PostGIS access for the fence table.

All SQL the tool issues lives here. Table names come from validated
configuration and are composed with psycopg.sql identifiers; every value is
a bound parameter.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Optional

import psycopg
from psycopg import sql

from .codes import KEY_MULTIPLIER
from .config import Config
from .domain.models import CheckReport
from .errors import StorageUnavailable

logger = logging.getLogger(__name__)

# PostgreSQL caps bind parameters per statement
PG_MAX_BIND_PARAMS = 65535
UPSERT_COLUMNS = 3
MAX_ROWS_PER_STATEMENT = PG_MAX_BIND_PARAMS // UPSERT_COLUMNS


class FenceStore:
    """
    Storage backend for the fence table and its ordering table.

    Each public method opens its own connection and runs in its own
    transaction, so export workers can call fetch_geojson concurrently
    without sharing a connection.
    """

    def __init__(self, config: Config):
        self.config = config
        self.table = sql.Identifier(config.fence.table)
        self.adcode_table = sql.Identifier(config.fence.adcode_table)
        self.staging_table = sql.Identifier(config.fence.adcode_staging_table)

    @contextmanager
    def connect(self) -> Iterator[psycopg.Connection]:
        """
        Open a connection; commit on success, roll back on error.

        Statement-level rejections (timeouts, lock failures and the like)
        are re-raised unchanged so callers can report them as their own
        failure.

        Raises:
            StorageUnavailable: If the server cannot be reached or the
                connection drops mid-transaction
        """
        try:
            conn = psycopg.connect(self.config.database.url)
        except psycopg.OperationalError as e:
            raise StorageUnavailable(f"Cannot connect to database: {e}") from e

        try:
            with conn:
                yield conn
        except psycopg.OperationalError as e:
            if _connection_lost(conn, e):
                raise StorageUnavailable(f"Database connection failed: {e}") from e
            raise

    def execute(self, *statements: sql.Composable) -> None:
        """Run statements in a single transaction."""
        with self.connect() as conn:
            with conn.cursor() as cur:
                for statement in statements:
                    cur.execute(statement)

    # ------------------------------------------------------------------
    # Export / load
    # ------------------------------------------------------------------

    def list_aggregate_adcodes(self) -> list[int]:
        """Distinct adcodes whose storage key is an exact multiple of 1,000,000."""
        query = sql.SQL(
            "SELECT DISTINCT code / %s FROM {table} WHERE code %% %s = 0 ORDER BY 1"
        ).format(table=self.table)
        with self.connect() as conn:
            with conn.cursor() as cur:
                cur.execute(query, (KEY_MULTIPLIER, KEY_MULTIPLIER))
                return [int(row[0]) for row in cur.fetchall()]

    def fetch_geojson(self, key: int) -> Optional[str]:
        """GeoJSON text of the fence stored under key, or None if absent."""
        query = sql.SQL(
            "SELECT ST_AsGeoJSON(fence) FROM {table} WHERE code = %s"
        ).format(table=self.table)
        with self.connect() as conn:
            with conn.cursor() as cur:
                cur.execute(query, (key,))
                row = cur.fetchone()
        if row is None or row[0] is None:
            return None
        return row[0]

    def upsert_fences(self, rows: Sequence[tuple[int, int, str]]) -> int:
        """
        Insert or update fence rows in one transaction.

        Rows are (code, adcode, geojson). A conflict on code replaces adcode
        and fence. Batches beyond the bind-parameter limit are split into
        several statements inside the same transaction, so the whole call
        still commits or rolls back as a unit.

        Returns:
            Number of rows written
        """
        if not rows:
            return 0

        with self.connect() as conn:
            with conn.cursor() as cur:
                for start in range(0, len(rows), MAX_ROWS_PER_STATEMENT):
                    chunk = rows[start:start + MAX_ROWS_PER_STATEMENT]
                    params = [value for row in chunk for value in row]
                    cur.execute(self._upsert_statement(len(chunk)), params)
        return len(rows)

    def _upsert_statement(self, count: int) -> sql.Composed:
        values = sql.SQL(", ").join(
            [sql.SQL("(%s, %s, ST_GeomFromGeoJSON(%s))")] * count
        )
        return sql.SQL(
            "INSERT INTO {table} (code, adcode, fence) VALUES {values} "
            "ON CONFLICT (code) DO UPDATE "
            "SET adcode = EXCLUDED.adcode, fence = EXCLUDED.fence"
        ).format(table=self.table, values=values)

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def create_table(self) -> None:
        """Drop the fence table if present and create it empty."""
        self.execute(
            sql.SQL("DROP TABLE IF EXISTS {table}").format(table=self.table),
            sql.SQL(
                "CREATE TABLE {table} ("
                "code BIGINT PRIMARY KEY, "
                "adcode INTEGER NOT NULL, "
                "fence GEOMETRY)"
            ).format(table=self.table),
        )

    def create_indexes(self) -> None:
        """Build the text-cast key, adcode and GiST indexes."""
        name = self.config.fence.table
        self.execute(
            sql.SQL("CREATE INDEX IF NOT EXISTS {index} ON {table} ((code::TEXT))").format(
                index=sql.Identifier(f"{name}_code_text_idx"), table=self.table),
            sql.SQL("CREATE INDEX IF NOT EXISTS {index} ON {table} (adcode)").format(
                index=sql.Identifier(f"{name}_adcode_idx"), table=self.table),
            sql.SQL("CREATE INDEX IF NOT EXISTS {index} ON {table} USING GIST (fence)").format(
                index=sql.Identifier(f"{name}_fence_idx"), table=self.table),
        )

    def drop_table(self) -> None:
        self.execute(sql.SQL("DROP TABLE IF EXISTS {table}").format(table=self.table))

    def truncate_table(self) -> None:
        self.execute(sql.SQL("TRUNCATE {table}").format(table=self.table))

    def reorder_adcodes(self) -> None:
        """Rewrite the adcode table in (rank, code) order via a staging copy."""
        self.execute(
            sql.SQL("DROP TABLE IF EXISTS {staging}").format(staging=self.staging_table),
            sql.SQL("CREATE TABLE {staging} AS SELECT * FROM {source} ORDER BY rank, code").format(
                staging=self.staging_table, source=self.adcode_table),
            sql.SQL("TRUNCATE {source}").format(source=self.adcode_table),
            sql.SQL("INSERT INTO {source} SELECT * FROM {staging} ORDER BY rank, code").format(
                source=self.adcode_table, staging=self.staging_table),
            sql.SQL("DROP TABLE {staging}").format(staging=self.staging_table),
        )

    # ------------------------------------------------------------------
    # Integrity
    # ------------------------------------------------------------------

    def check_integrity(self, sample_size: int = 10) -> CheckReport:
        """Count rows, key-invariant violations and orphaned codes."""
        invalid = sql.SQL("code <> adcode::BIGINT * %s")
        orphan = sql.SQL(
            "NOT EXISTS (SELECT 1 FROM {adcode} a WHERE a.code = f.code)"
        ).format(adcode=self.adcode_table)

        with self.connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    sql.SQL("SELECT count(*), count(*) FILTER (WHERE {invalid}) FROM {table}").format(
                        invalid=invalid, table=self.table),
                    (KEY_MULTIPLIER,),
                )
                total, invalid_keys = cur.fetchone()

                cur.execute(
                    sql.SQL("SELECT code FROM {table} WHERE {invalid} ORDER BY code LIMIT %s").format(
                        table=self.table, invalid=invalid),
                    (KEY_MULTIPLIER, sample_size),
                )
                sample_invalid = [int(row[0]) for row in cur.fetchall()]

                cur.execute("SELECT to_regclass(%s) IS NOT NULL", (self.config.fence.adcode_table,))
                adcode_present = bool(cur.fetchone()[0])

                orphans = 0
                sample_orphans: list[int] = []
                if adcode_present:
                    cur.execute(
                        sql.SQL("SELECT count(*) FROM {table} f WHERE {orphan}").format(
                            table=self.table, orphan=orphan))
                    orphans = cur.fetchone()[0]
                    cur.execute(
                        sql.SQL("SELECT f.code FROM {table} f WHERE {orphan} ORDER BY f.code LIMIT %s").format(
                            table=self.table, orphan=orphan),
                        (sample_size,),
                    )
                    sample_orphans = [int(row[0]) for row in cur.fetchall()]

        return CheckReport(
            total=total,
            invalid_keys=invalid_keys,
            orphans=orphans,
            sample_invalid=sample_invalid,
            sample_orphans=sample_orphans,
            adcode_table_present=adcode_present,
        )


def _connection_lost(conn: psycopg.Connection, error: psycopg.Error) -> bool:
    # closed is always set once the with block exits; class 08 is connection exception
    return bool(conn.broken or (error.sqlstate or "").startswith("08"))
