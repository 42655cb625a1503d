"""
Database Module
===============
asyncpg connection pool and schema migrations for the payment tables.

The pool is owned by whoever constructs ``Database`` (the API lifespan or the
admin dashboard); nothing here is a module-level singleton.

Tables:
- payments           one row per gateway order
- refunds            refunds issued against a payment
- settlements        settlement batches reported by the gateway
- split_settlements  per-vendor split configuration
- webhooks           append-only audit log of authenticated webhooks
"""

from contextlib import asynccontextmanager
from typing import List, Optional

import asyncpg
import structlog

from config import Settings

logger = structlog.get_logger().bind(component="database")


MIGRATIONS = [
    """
    CREATE TABLE IF NOT EXISTS payments (
        id UUID PRIMARY KEY,
        order_id VARCHAR(255) UNIQUE NOT NULL,
        cf_order_id VARCHAR(255) UNIQUE NOT NULL,
        amount DECIMAL(15,2) NOT NULL,
        currency VARCHAR(3) NOT NULL DEFAULT 'INR',
        status VARCHAR(50) NOT NULL DEFAULT 'CREATED',
        payment_method VARCHAR(100),
        customer_id VARCHAR(255) NOT NULL,
        customer_name VARCHAR(255) NOT NULL,
        customer_email VARCHAR(255) NOT NULL,
        customer_phone VARCHAR(20) NOT NULL,
        description TEXT,
        payment_url TEXT,
        cf_payment_id VARCHAR(255),
        payment_time TIMESTAMPTZ,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS refunds (
        id UUID PRIMARY KEY,
        refund_id VARCHAR(255) UNIQUE NOT NULL,
        cf_refund_id VARCHAR(255) UNIQUE NOT NULL,
        order_id VARCHAR(255) NOT NULL REFERENCES payments(order_id) ON DELETE CASCADE,
        cf_order_id VARCHAR(255) NOT NULL,
        amount DECIMAL(15,2) NOT NULL,
        status VARCHAR(50) NOT NULL DEFAULT 'PENDING',
        reason TEXT,
        processed_at TIMESTAMPTZ,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS settlements (
        id UUID PRIMARY KEY,
        settlement_id VARCHAR(255) UNIQUE NOT NULL,
        order_id VARCHAR(255) NOT NULL REFERENCES payments(order_id) ON DELETE CASCADE,
        cf_order_id VARCHAR(255) NOT NULL,
        amount DECIMAL(15,2) NOT NULL,
        status VARCHAR(50) NOT NULL DEFAULT 'PENDING',
        utr VARCHAR(255),
        settled_at TIMESTAMPTZ,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS split_settlements (
        id UUID PRIMARY KEY,
        order_id VARCHAR(255) NOT NULL REFERENCES payments(order_id) ON DELETE CASCADE,
        cf_order_id VARCHAR(255) NOT NULL,
        vendor_id VARCHAR(255) NOT NULL,
        amount DECIMAL(15,2) NOT NULL,
        percentage DECIMAL(5,2),
        split_type VARCHAR(20) NOT NULL CHECK (split_type IN ('AMOUNT', 'PERCENTAGE')),
        status VARCHAR(50) NOT NULL DEFAULT 'PENDING',
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    # Raw body kept as TEXT so the audit copy is byte-for-byte what was signed
    """
    CREATE TABLE IF NOT EXISTS webhooks (
        id UUID PRIMARY KEY,
        event_type VARCHAR(100) NOT NULL,
        order_id VARCHAR(255),
        payload TEXT NOT NULL,
        status VARCHAR(50) NOT NULL DEFAULT 'RECEIVED',
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_payments_status ON payments(status)",
    "CREATE INDEX IF NOT EXISTS idx_payments_customer_id ON payments(customer_id)",
    "CREATE INDEX IF NOT EXISTS idx_payments_created_at ON payments(created_at)",
    "CREATE INDEX IF NOT EXISTS idx_refunds_order_id ON refunds(order_id)",
    "CREATE INDEX IF NOT EXISTS idx_refunds_status ON refunds(status)",
    "CREATE INDEX IF NOT EXISTS idx_settlements_order_id ON settlements(order_id)",
    "CREATE INDEX IF NOT EXISTS idx_split_settlements_order_id ON split_settlements(order_id)",
    "CREATE INDEX IF NOT EXISTS idx_split_settlements_vendor_id ON split_settlements(vendor_id)",
    "CREATE INDEX IF NOT EXISTS idx_webhooks_event_type ON webhooks(event_type)",
    "CREATE INDEX IF NOT EXISTS idx_webhooks_order_id ON webhooks(order_id)",
    "CREATE INDEX IF NOT EXISTS idx_webhooks_created_at ON webhooks(created_at DESC)",
]


class DatabaseNotInitializedError(RuntimeError):
    """Raised when the pool is used before initialize()."""


class Database:
    """Async PostgreSQL connection pool manager"""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._pool: Optional[asyncpg.Pool] = None

    @property
    def initialized(self) -> bool:
        return self._pool is not None

    async def initialize(self, run_migrations: bool = True) -> None:
        """Create the connection pool and apply migrations."""
        if self._pool is not None:
            return
        if not self.settings.database_url:
            raise DatabaseNotInitializedError("DATABASE_URL environment variable is not set")

        try:
            self._pool = await asyncpg.create_pool(
                self.settings.database_url,
                min_size=self.settings.db_min_pool_size,
                max_size=self.settings.db_max_pool_size,
                max_inactive_connection_lifetime=30 * 60,
            )
            async with self._pool.acquire() as conn:
                await conn.execute("SELECT 1")
            logger.info("database_pool_initialized",
                        min_size=self.settings.db_min_pool_size,
                        max_size=self.settings.db_max_pool_size)
        except Exception as e:
            logger.error("database_init_failed", error=str(e))
            raise

        if run_migrations:
            await self._run_migrations()

    async def close(self) -> None:
        """Close the connection pool"""
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("database_pool_closed")

    @asynccontextmanager
    async def acquire(self):
        """Acquire a connection from the pool"""
        if self._pool is None:
            raise DatabaseNotInitializedError("Database.initialize() has not been awaited")
        async with self._pool.acquire() as conn:
            yield conn

    async def execute(self, query: str, *args) -> str:
        async with self.acquire() as conn:
            return await conn.execute(query, *args)

    async def fetch_one(self, query: str, *args) -> Optional[asyncpg.Record]:
        async with self.acquire() as conn:
            return await conn.fetchrow(query, *args)

    async def fetch_all(self, query: str, *args) -> List[asyncpg.Record]:
        async with self.acquire() as conn:
            return await conn.fetch(query, *args)

    async def _run_migrations(self) -> None:
        async with self.acquire() as conn:
            for migration in MIGRATIONS:
                try:
                    await conn.execute(migration)
                except asyncpg.DuplicateObjectError as e:
                    logger.warning("migration_warning", error=str(e))

        logger.info("database_migrations_complete", statements=len(MIGRATIONS))
