# backend/pixelwall/config.py
import os

# "postgres" for the real store, "memory" for local runs without a database
STORE_BACKEND = os.getenv("STORE_BACKEND", "postgres")

DB_HOST = os.getenv("DB_HOST", "localhost")
DB_PORT = os.getenv("DB_PORT", "5432")

DB_NAME = os.getenv("DB_NAME", "pixel_wall")
DB_USER = os.getenv("DB_USER", "pixel_wall_user")
DB_PASSWORD = os.getenv("DB_PASSWORD", "pixel_wall_password")

DB_POOL_MIN = int(os.getenv("DB_POOL_MIN", "1"))
DB_POOL_MAX = int(os.getenv("DB_POOL_MAX", "10"))

RESERVATION_MAX_RETRIES = int(os.getenv("RESERVATION_MAX_RETRIES", "3"))
RESERVATION_LOCK_TIMEOUT = float(os.getenv("RESERVATION_LOCK_TIMEOUT", "5.0"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "*").split(",")
    if origin.strip()
]


def get_db_dsn_kwargs() -> dict:
    """Connection keyword arguments for psycopg2.connect / pools."""
    return {
        "host": DB_HOST,
        "port": DB_PORT,
        "dbname": DB_NAME,
        "user": DB_USER,
        "password": DB_PASSWORD,
    }
