"""
DuckDB storage implementation for metric points.

Key features:
- Thread-safe access with per-thread connections
- Automatic, idempotent schema creation
- Versioned snapshot replace: every recompute writes its rows under a
  version drawn from a sequence, then a single transaction moves the
  published version pointer and purges older versions
- A recompute that finishes after a newer one has published discards its
  own rows instead of publishing
- Reads only ever see the published version
"""

import json
import os
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
from uuid import uuid4

import duckdb
import structlog

from feedback_metrics.config import get_settings
from feedback_metrics.errors import DependencyFailure, OperationCancelled
from feedback_metrics.models.enums import Granularity
from feedback_metrics.models.metrics import MetricPoint
from feedback_metrics.utils.dates import to_naive_utc

from .base import MetricStore

logger = structlog.get_logger(__name__)

POINT_COLUMNS = """
    metric_id, organization_id, account_id, product_id, question_id,
    metric_type, metric_name, metric_value, observation_count, bucket_start,
    granularity, metadata, version
"""

SELECT_COLUMNS = ", ".join(f"m.{c.strip()}" for c in POINT_COLUMNS.split(","))


class StorageError(DependencyFailure):
    """Base exception for all storage operation failures."""

    pass


class DuckDBStorage(MetricStore):
    """
    DuckDB implementation of the metric store.

    Attributes:
        db_path: Path to the DuckDB database file
        batch_size: Rows per insert batch during replace_all
        _local: Thread-local storage for per-thread connections
        _lock: Thread lock for schema operations
        _publish_lock: Thread lock serializing pointer moves
        _initialized: Flag tracking whether schema is initialized
    """

    def __init__(self, db_path: str = "./data/metrics.duckdb", batch_size: Optional[int] = None):
        """
        Initialize DuckDB storage backend.

        Args:
            db_path: Path to DuckDB database file
            batch_size: Rows per insert batch (default: settings.metrics_batch_size)
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.batch_size = batch_size or get_settings().metrics_batch_size

        self._local = threading.local()
        self._lock = threading.Lock()
        self._publish_lock = threading.Lock()
        self._initialized = False

        logger.info("duckdb_storage_initialized", db_path=str(self.db_path))

        self._initialize_schema()

    @contextmanager
    def _get_connection(self):
        """
        Get a thread-local DuckDB connection.

        Yields:
            DuckDB connection instance

        Raises:
            StorageError: If connection cannot be established
        """
        if not hasattr(self._local, "connection"):
            try:
                self._local.connection = duckdb.connect(str(self.db_path))
                logger.debug("duckdb_connection_created", thread_id=threading.get_ident())
            except Exception as e:
                logger.error("duckdb_connection_failed", error=str(e))
                raise StorageError(f"Failed to connect to DuckDB: {e}") from e

        yield self._local.connection

    @contextmanager
    def _transaction(self, conn):
        """Run a block inside an explicit transaction, rolling back on error."""
        conn.begin()
        try:
            yield conn
        except Exception:
            conn.rollback()
            raise
        conn.commit()

    def _initialize_schema(self):
        """
        Initialize tables and indexes. Idempotent and safe to call multiple times.

        Raises:
            StorageError: If schema creation fails
        """
        if self._initialized:
            return

        with self._lock:
            if self._initialized:
                return

            try:
                with self._get_connection() as conn:
                    conn.execute("""
                        CREATE TABLE IF NOT EXISTS time_series_metrics (
                            metric_id VARCHAR NOT NULL,
                            organization_id VARCHAR NOT NULL,
                            account_id VARCHAR NOT NULL,
                            product_id VARCHAR,
                            question_id VARCHAR,
                            metric_type VARCHAR NOT NULL,
                            metric_name VARCHAR NOT NULL,
                            metric_value DOUBLE NOT NULL,
                            observation_count BIGINT NOT NULL DEFAULT 0,
                            bucket_start TIMESTAMP NOT NULL,
                            granularity VARCHAR NOT NULL,
                            metadata JSON,
                            version BIGINT NOT NULL,
                            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
                        )
                    """)

                    conn.execute("""
                        CREATE INDEX IF NOT EXISTS idx_tsm_organization
                        ON time_series_metrics(organization_id)
                    """)

                    conn.execute("""
                        CREATE INDEX IF NOT EXISTS idx_tsm_metric_type
                        ON time_series_metrics(metric_type)
                    """)

                    conn.execute("""
                        CREATE INDEX IF NOT EXISTS idx_tsm_bucket_start
                        ON time_series_metrics(bucket_start)
                    """)

                    conn.execute("CREATE SEQUENCE IF NOT EXISTS metric_version_seq START 1")

                    # Published recompute per organization
                    conn.execute("""
                        CREATE TABLE IF NOT EXISTS metric_versions (
                            organization_id VARCHAR PRIMARY KEY,
                            active_version BIGINT NOT NULL,
                            published_at TIMESTAMP NOT NULL
                        )
                    """)

                    logger.info("duckdb_schema_initialized", table_count=2)
                    self._initialized = True

            except StorageError:
                raise
            except Exception as e:
                logger.error("duckdb_schema_initialization_failed", error=str(e))
                raise StorageError(f"Failed to initialize schema: {e}") from e

    def clear_for_testing(self) -> None:
        """
        Truncate all tables. For testing only, active when TESTING=true.
        """
        if not os.environ.get("TESTING"):
            return
        with self._get_connection() as conn:
            conn.execute("DELETE FROM time_series_metrics")
            conn.execute("DELETE FROM metric_versions")

    # =========================================================================
    # Writes
    # =========================================================================

    def _next_version(self, conn, organization_id: str) -> int:
        # Versions are unique across organizations and concurrent recomputes.
        row = conn.execute("SELECT nextval('metric_version_seq')").fetchone()
        return int(row[0])

    def _publish(self, conn, organization_id: str, version: int) -> bool:
        """
        Move the published pointer to version and purge older versions.

        Returns False, after deleting the version's own rows, when a newer
        version has already been published for the organization.
        """
        with self._publish_lock, self._transaction(conn):
            row = conn.execute(
                "SELECT active_version FROM metric_versions WHERE organization_id = ?",
                [organization_id],
            ).fetchone()

            if row is not None and row[0] >= version:
                conn.execute(
                    "DELETE FROM time_series_metrics WHERE organization_id = ? AND version = ?",
                    [organization_id, version],
                )
                return False

            conn.execute(
                """
                INSERT INTO metric_versions (organization_id, active_version, published_at)
                VALUES (?, ?, ?)
                ON CONFLICT (organization_id) DO UPDATE SET
                    active_version = excluded.active_version,
                    published_at = excluded.published_at
                """,
                [organization_id, version, to_naive_utc(datetime.now(timezone.utc))],
            )
            conn.execute(
                "DELETE FROM time_series_metrics WHERE organization_id = ? AND version < ?",
                [organization_id, version],
            )
            return True

    def _insert_batch(self, conn, rows: list[list]) -> None:
        with self._transaction(conn):
            conn.executemany(
                f"INSERT INTO time_series_metrics ({POINT_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                rows,
            )

    @staticmethod
    def _to_row(point: MetricPoint, version: int) -> list:
        return [
            str(uuid4()),
            point.organization_id,
            point.account_id,
            point.product_id,
            point.question_id,
            point.metric_type,
            point.metric_name,
            point.value,
            point.count,
            to_naive_utc(point.timestamp),
            Granularity(point.granularity).value,
            json.dumps(point.metadata) if point.metadata else None,
            version,
        ]

    def replace_all(
        self,
        organization_id: str,
        points: list[MetricPoint],
        cancel_event: Optional[threading.Event] = None,
    ) -> int:
        """Replace an organization's points under a new published version."""
        try:
            with self._get_connection() as conn:
                version = self._next_version(conn, organization_id)

                for start in range(0, len(points), self.batch_size):
                    if cancel_event is not None and cancel_event.is_set():
                        logger.warning(
                            "metric_replace_cancelled",
                            organization_id=organization_id,
                            version=version,
                            written=start,
                        )
                        raise OperationCancelled(
                            f"Metric replace for {organization_id} cancelled"
                        )

                    end = min(start + self.batch_size, len(points))
                    rows = [self._to_row(p, version) for p in points[start:end]]
                    try:
                        self._insert_batch(conn, rows)
                    except Exception as e:
                        logger.error(
                            "metric_batch_insert_failed",
                            organization_id=organization_id,
                            version=version,
                            batch_start=start,
                            batch_end=end,
                            total_metrics=len(points),
                            error=str(e),
                        )
                        raise StorageError(
                            f"Failed to insert metric batch {start}-{end}: {e}"
                        ) from e

                if cancel_event is not None and cancel_event.is_set():
                    raise OperationCancelled(f"Metric replace for {organization_id} cancelled")

                if not self._publish(conn, organization_id, version):
                    logger.warning(
                        "metric_replace_superseded",
                        organization_id=organization_id,
                        version=version,
                    )
                    return len(points)

                logger.info(
                    "organization_metrics_replaced",
                    organization_id=organization_id,
                    version=version,
                    count=len(points),
                )
                return len(points)

        except (StorageError, OperationCancelled):
            raise
        except Exception as e:
            logger.error(
                "replace_organization_metrics_failed",
                organization_id=organization_id,
                error=str(e),
            )
            raise StorageError(f"Failed to replace organization metrics: {e}") from e

    def delete_older_than(self, cutoff: datetime) -> int:
        """Delete points older than cutoff across all organizations."""
        cutoff = to_naive_utc(cutoff)
        try:
            with self._get_connection() as conn:
                with self._transaction(conn):
                    deleted = conn.execute(
                        "SELECT COUNT(*) FROM time_series_metrics WHERE bucket_start < ?",
                        [cutoff],
                    ).fetchone()[0]
                    conn.execute(
                        "DELETE FROM time_series_metrics WHERE bucket_start < ?",
                        [cutoff],
                    )

                logger.info("old_metrics_deleted", count=deleted, before=cutoff.isoformat())
                return int(deleted)

        except Exception as e:
            logger.error("delete_old_metrics_failed", before=cutoff.isoformat(), error=str(e))
            raise StorageError(f"Failed to delete old metrics: {e}") from e

    # =========================================================================
    # Reads
    # =========================================================================

    def find(
        self,
        organization_id: str,
        start_time: datetime,
        end_time: datetime,
        granularity: Granularity,
        metric_types: Optional[list[str]] = None,
        product_id: Optional[str] = None,
        question_id: Optional[str] = None,
    ) -> list[MetricPoint]:
        """Read published points for an organization."""
        try:
            with self._get_connection() as conn:
                query = f"""
                    SELECT {SELECT_COLUMNS}
                    FROM time_series_metrics m
                    JOIN metric_versions v
                      ON v.organization_id = m.organization_id
                     AND v.active_version = m.version
                    WHERE m.organization_id = ?
                      AND m.bucket_start >= ?
                      AND m.bucket_start <= ?
                      AND m.granularity = ?
                """
                params: list = [
                    organization_id,
                    to_naive_utc(start_time),
                    to_naive_utc(end_time),
                    Granularity(granularity).value,
                ]

                if metric_types:
                    placeholders = ",".join(["?"] * len(metric_types))
                    query += f" AND m.metric_type IN ({placeholders})"
                    params.extend(metric_types)

                if product_id:
                    query += " AND m.product_id = ?"
                    params.append(product_id)

                if question_id:
                    query += " AND m.question_id = ?"
                    params.append(question_id)

                query += " ORDER BY m.bucket_start ASC, m.metric_type ASC"

                result = conn.execute(query, params).fetchall()

                points = [
                    MetricPoint(
                        organization_id=row[1],
                        account_id=row[2],
                        product_id=row[3],
                        question_id=row[4],
                        metric_type=row[5],
                        metric_name=row[6],
                        value=row[7],
                        count=row[8],
                        timestamp=row[9],
                        granularity=row[10],
                        metadata=json.loads(row[11]) if row[11] else {},
                    )
                    for row in result
                ]

                logger.debug("metric_points_read", organization_id=organization_id, count=len(points))
                return points

        except Exception as e:
            logger.error("read_metric_points_failed", organization_id=organization_id, error=str(e))
            raise StorageError(f"Failed to read metric points: {e}") from e

    def list_metric_types(self, organization_id: str, prefix: str) -> list[str]:
        """List distinct published metric types starting with prefix."""
        try:
            with self._get_connection() as conn:
                result = conn.execute(
                    """
                    SELECT DISTINCT m.metric_type
                    FROM time_series_metrics m
                    JOIN metric_versions v
                      ON v.organization_id = m.organization_id
                     AND v.active_version = m.version
                    WHERE m.organization_id = ?
                      AND starts_with(m.metric_type, ?)
                    ORDER BY m.metric_type
                    """,
                    [organization_id, prefix],
                ).fetchall()
                return [row[0] for row in result]

        except Exception as e:
            logger.error("list_metric_types_failed", prefix=prefix, error=str(e))
            raise StorageError(f"Failed to list metric types: {e}") from e
