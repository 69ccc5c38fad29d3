# backend/pixelwall/migrations.py

import psycopg2
from loguru import logger

from pixelwall import config
from pixelwall.logging_config import configure_logging

CREATE_ADS_TABLE = """
CREATE TABLE IF NOT EXISTS ads (
    id SERIAL PRIMARY KEY,
    x INTEGER NOT NULL,
    y INTEGER NOT NULL,
    width INTEGER NOT NULL,
    height INTEGER NOT NULL,
    business_name VARCHAR(255) NOT NULL,
    description TEXT,
    image_url TEXT NOT NULL,
    target_url TEXT NOT NULL,
    alt TEXT,
    price BIGINT NOT NULL,
    status VARCHAR(50) NOT NULL DEFAULT 'active',
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    CONSTRAINT valid_position CHECK (x >= 0 AND x < 1000 AND y >= 0 AND y < 1000),
    CONSTRAINT valid_size CHECK (width > 0 AND width <= 1000 AND height > 0 AND height <= 1000),
    CONSTRAINT within_canvas CHECK (x + width <= 1000 AND y + height <= 1000),
    CONSTRAINT valid_status CHECK (status IN ('active', 'pending', 'expired', 'removed')),
    -- half-open ranges: edge-touching ads do not conflict
    CONSTRAINT no_active_overlap EXCLUDE USING gist (
        int4range(x, x + width) WITH &&,
        int4range(y, y + height) WITH &&
    ) WHERE (status = 'active')
);
"""

CREATE_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_ads_position ON ads(x, y);",
    "CREATE INDEX IF NOT EXISTS idx_ads_status ON ads(status);",
    "CREATE INDEX IF NOT EXISTS idx_ads_created_at ON ads(created_at DESC);",
]

CREATE_UPDATED_AT_TRIGGER = """
CREATE OR REPLACE FUNCTION update_updated_at_column()
RETURNS TRIGGER AS $$
BEGIN
    NEW.updated_at = now();
    RETURN NEW;
END;
$$ LANGUAGE plpgsql;

DROP TRIGGER IF EXISTS update_ads_updated_at ON ads;
CREATE TRIGGER update_ads_updated_at
    BEFORE UPDATE ON ads
    FOR EACH ROW
    EXECUTE FUNCTION update_updated_at_column();
"""


def create_tables(conn) -> None:
    """
    Creates the ads table, its indexes and the updated_at trigger
    in a single transaction.
    """
    try:
        with conn.cursor() as cur:
            cur.execute(CREATE_ADS_TABLE)
            for statement in CREATE_INDEXES:
                cur.execute(statement)
            cur.execute(CREATE_UPDATED_AT_TRIGGER)
        conn.commit()
    except psycopg2.Error:
        conn.rollback()
        raise
    logger.info("Database tables created")


def main() -> None:
    configure_logging(config.LOG_LEVEL)
    conn = psycopg2.connect(**config.get_db_dsn_kwargs())
    try:
        create_tables(conn)
    finally:
        conn.close()


if __name__ == "__main__":
    main()
