"""Storage backend: Protocol definition, SQLite implementation, factory."""

from __future__ import annotations

import logging
from datetime import date
from pathlib import Path
from typing import ClassVar, Protocol, runtime_checkable

import aiosqlite

from ohlcv_sync.core.config import StorageConfig
from ohlcv_sync.core.exceptions import StorageError
from ohlcv_sync.core.models import AssetType, PricePoint, SymbolMetadata

logger = logging.getLogger(__name__)


@runtime_checkable
class PriceStore(Protocol):
    """Persistence collaborator of the sync job."""

    async def last_stored_date(self, symbol: str) -> date | None: ...
    async def exists_for_date(self, symbol: str, day: date) -> bool: ...
    async def upsert_prices(self, symbol: str, points: list[PricePoint]) -> int: ...
    async def get_or_create_symbol_metadata(self, symbol: str) -> SymbolMetadata: ...
    async def update_symbol_metadata(
        self, symbol: str, earliest_date: date | None, last_sync_date: date
    ) -> None: ...
    async def list_symbols(self) -> list[str]: ...
    async def get_prices(
        self, symbol: str, start: date | None = None, end: date | None = None
    ) -> list[PricePoint]: ...
    async def count_prices(self, symbol: str | None = None) -> int: ...
    async def list_metadata(self) -> list[SymbolMetadata]: ...
    async def initialize(self) -> None: ...
    async def close(self) -> None: ...
    async def health_check(self) -> bool: ...


class SqlitePriceStore:
    """SQLite implementation of the price store.

    Price rows are insert-only: a date already stored for a symbol is never
    overwritten, so re-running a sync over the same range writes nothing.
    """

    _MIGRATIONS: ClassVar[dict[int, tuple[str, list[str]]]] = {
        1: (
            "Initial schema",
            [
                """CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT DEFAULT (datetime('now'))
                )""",
                """CREATE TABLE IF NOT EXISTS prices (
                    symbol TEXT NOT NULL,
                    date TEXT NOT NULL,
                    open REAL,
                    high REAL,
                    low REAL,
                    close REAL NOT NULL,
                    adjusted_close REAL,
                    volume INTEGER,
                    created_at TEXT DEFAULT (datetime('now')),
                    PRIMARY KEY (symbol, date)
                )""",
                """CREATE TABLE IF NOT EXISTS symbols (
                    symbol TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    asset_type TEXT NOT NULL,
                    earliest_date TEXT,
                    last_sync_date TEXT,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT DEFAULT (datetime('now')),
                    updated_at TEXT DEFAULT (datetime('now'))
                )""",
                "CREATE INDEX IF NOT EXISTS idx_prices_date ON prices(date)",
            ],
        ),
    }

    def __init__(self, config: StorageConfig) -> None:
        self._path = config.sqlite_path
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open connection, enable WAL, run migrations."""
        try:
            if self._path != ":memory:":
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            self._db = await aiosqlite.connect(self._path)
            self._db.row_factory = aiosqlite.Row
            await self._db.execute("PRAGMA journal_mode=WAL")
            current = await self._get_schema_version()
            await self._apply_migrations(current)
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to initialize SQLite store: {e}",
                context={"operation": "initialize", "path": self._path},
            ) from e

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def health_check(self) -> bool:
        if self._db is None:
            return False
        try:
            async with self._db.execute("SELECT 1") as cursor:
                row = await cursor.fetchone()
            return row is not None
        except Exception:
            return False

    # --- Schema Migration ---

    async def _get_schema_version(self) -> int:
        try:
            async with self._db.execute(
                "SELECT MAX(version) FROM schema_version"
            ) as cursor:
                row = await cursor.fetchone()
            return row[0] if row[0] is not None else 0
        except aiosqlite.OperationalError:
            return 0

    async def _apply_migrations(self, current_version: int) -> None:
        for version in sorted(self._MIGRATIONS.keys()):
            if version <= current_version:
                continue
            desc, statements = self._MIGRATIONS[version]
            logger.info("Applying migration %d: %s", version, desc)
            for sql in statements:
                await self._db.execute(sql)
            await self._db.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )

    # --- Price Operations ---

    async def last_stored_date(self, symbol: str) -> date | None:
        try:
            async with self._db.execute(
                "SELECT MAX(date) FROM prices WHERE symbol = ?", (symbol,)
            ) as cursor:
                row = await cursor.fetchone()
            return date.fromisoformat(row[0]) if row and row[0] else None
        except Exception as e:
            raise StorageError(
                f"Failed to read last stored date: {e}",
                context={"operation": "query", "table": "prices", "symbol": symbol},
            ) from e

    async def exists_for_date(self, symbol: str, day: date) -> bool:
        try:
            async with self._db.execute(
                "SELECT 1 FROM prices WHERE symbol = ? AND date = ?",
                (symbol, day.isoformat()),
            ) as cursor:
                row = await cursor.fetchone()
            return row is not None
        except Exception as e:
            raise StorageError(
                f"Failed to check price existence: {e}",
                context={"operation": "query", "table": "prices", "symbol": symbol},
            ) from e

    async def upsert_prices(self, symbol: str, points: list[PricePoint]) -> int:
        """Insert points for dates not yet stored, in one transaction.

        Returns the number of rows actually written.
        """
        if not points:
            return 0
        rows = [
            (
                symbol,
                p.date.isoformat(),
                p.open,
                p.high,
                p.low,
                p.close,
                p.adjusted_close,
                p.volume,
            )
            for p in points
        ]
        try:
            before = self._db.total_changes
            await self._db.executemany(
                """INSERT INTO prices
                   (symbol, date, open, high, low, close, adjusted_close, volume)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(symbol, date) DO NOTHING""",
                rows,
            )
            written = self._db.total_changes - before
            await self._db.commit()
        except Exception as e:
            await self._db.rollback()
            raise StorageError(
                f"Failed to store prices: {e}",
                context={"operation": "upsert", "table": "prices", "symbol": symbol},
            ) from e

        logger.debug("Stored %d/%d price rows for %s", written, len(points), symbol)
        return written

    async def get_prices(
        self, symbol: str, start: date | None = None, end: date | None = None
    ) -> list[PricePoint]:
        try:
            query = "SELECT * FROM prices WHERE symbol = ?"
            params: list = [symbol]
            if start is not None:
                query += " AND date >= ?"
                params.append(start.isoformat())
            if end is not None:
                query += " AND date <= ?"
                params.append(end.isoformat())
            query += " ORDER BY date"
            async with self._db.execute(query, params) as cursor:
                rows = await cursor.fetchall()
            return [
                PricePoint(
                    date=date.fromisoformat(row["date"]),
                    open=row["open"],
                    high=row["high"],
                    low=row["low"],
                    close=row["close"],
                    adjusted_close=row["adjusted_close"],
                    volume=row["volume"],
                )
                for row in rows
            ]
        except Exception as e:
            raise StorageError(
                f"Failed to get prices: {e}",
                context={"operation": "query", "table": "prices", "symbol": symbol},
            ) from e

    async def count_prices(self, symbol: str | None = None) -> int:
        try:
            if symbol is None:
                query, params = "SELECT COUNT(*) FROM prices", ()
            else:
                query, params = "SELECT COUNT(*) FROM prices WHERE symbol = ?", (symbol,)
            async with self._db.execute(query, params) as cursor:
                row = await cursor.fetchone()
            return row[0]
        except Exception as e:
            raise StorageError(
                f"Failed to count prices: {e}",
                context={"operation": "query", "table": "prices"},
            ) from e

    async def list_symbols(self) -> list[str]:
        """Active tracked symbols plus any symbol that has price rows."""
        try:
            async with self._db.execute(
                """SELECT symbol FROM symbols WHERE is_active = 1
                   UNION
                   SELECT DISTINCT symbol FROM prices
                   ORDER BY symbol"""
            ) as cursor:
                rows = await cursor.fetchall()
            return [row[0] for row in rows]
        except Exception as e:
            raise StorageError(
                f"Failed to list symbols: {e}",
                context={"operation": "query", "table": "symbols"},
            ) from e

    # --- Symbol Metadata ---

    async def get_or_create_symbol_metadata(self, symbol: str) -> SymbolMetadata:
        """Return the metadata row, creating an auto-imported placeholder if absent."""
        try:
            existing = await self._get_metadata(symbol)
            if existing is not None:
                return existing
            name = f"{symbol} (Auto-imported)"
            asset_type = AssetType.infer(symbol, name)
            await self._db.execute(
                """INSERT INTO symbols (symbol, name, asset_type, is_active)
                   VALUES (?, ?, ?, 1)
                   ON CONFLICT(symbol) DO NOTHING""",
                (symbol, name, str(asset_type)),
            )
            await self._db.commit()
            logger.info("Created metadata for %s as %s", symbol, asset_type.value)
            return SymbolMetadata(symbol=symbol, name=name, asset_type=asset_type)
        except Exception as e:
            if isinstance(e, StorageError):
                raise
            raise StorageError(
                f"Failed to create symbol metadata: {e}",
                context={"operation": "insert", "table": "symbols", "symbol": symbol},
            ) from e

    async def update_symbol_metadata(
        self, symbol: str, earliest_date: date | None, last_sync_date: date
    ) -> None:
        """Record the sync date; ``earliest_date`` only ever moves backwards."""
        try:
            await self._db.execute(
                """UPDATE symbols SET
                       earliest_date = CASE
                           WHEN ? IS NULL THEN earliest_date
                           WHEN earliest_date IS NULL OR ? < earliest_date THEN ?
                           ELSE earliest_date
                       END,
                       last_sync_date = ?,
                       updated_at = datetime('now')
                   WHERE symbol = ?""",
                (
                    earliest_date.isoformat() if earliest_date else None,
                    earliest_date.isoformat() if earliest_date else None,
                    earliest_date.isoformat() if earliest_date else None,
                    last_sync_date.isoformat(),
                    symbol,
                ),
            )
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to update symbol metadata: {e}",
                context={"operation": "update", "table": "symbols", "symbol": symbol},
            ) from e

    async def list_metadata(self) -> list[SymbolMetadata]:
        try:
            async with self._db.execute("SELECT * FROM symbols ORDER BY symbol") as cursor:
                rows = await cursor.fetchall()
            return [self._row_to_metadata(r) for r in rows]
        except Exception as e:
            raise StorageError(
                f"Failed to list symbol metadata: {e}",
                context={"operation": "query", "table": "symbols"},
            ) from e

    async def _get_metadata(self, symbol: str) -> SymbolMetadata | None:
        async with self._db.execute(
            "SELECT * FROM symbols WHERE symbol = ?", (symbol,)
        ) as cursor:
            row = await cursor.fetchone()
        return self._row_to_metadata(row) if row is not None else None

    @staticmethod
    def _row_to_metadata(row: aiosqlite.Row) -> SymbolMetadata:
        return SymbolMetadata(
            symbol=row["symbol"],
            name=row["name"],
            asset_type=AssetType(row["asset_type"]),
            earliest_date=date.fromisoformat(row["earliest_date"]) if row["earliest_date"] else None,
            last_sync_date=date.fromisoformat(row["last_sync_date"]) if row["last_sync_date"] else None,
            is_active=bool(row["is_active"]),
        )


async def create_store(config: StorageConfig) -> SqlitePriceStore:
    """Create and initialize the storage backend."""
    store = SqlitePriceStore(config)
    await store.initialize()
    return store
