"""Environment-driven configuration for the app."""

from dataclasses import dataclass
import json
import logging
import os

from dotenv import load_dotenv

# values already in the environment win over the .env file
load_dotenv()

DEFAULT_PORT = 3003
DEFAULT_JWT_EXPIRES_IN = 60 * 60
DEFAULT_STATEMENT_TIMEOUT_MS = 30 * 1000


@dataclass(frozen=True)
class Settings:
    database_url: str | None = None
    jwt_secret: str | None = None
    jwt_expires_in: int = DEFAULT_JWT_EXPIRES_IN
    statement_timeout_ms: int = DEFAULT_STATEMENT_TIMEOUT_MS
    supplier_credentials: tuple[dict, ...] = ()
    log_level: int = logging.INFO
    log_dir: str | None = None
    port: int = DEFAULT_PORT


def _int_setting(name: str, default: int) -> int:
    value = os.environ.get(name, '').strip()
    if not value:
        return default
    try:
        return int(value)
    except ValueError as error:
        raise ValueError(f'{name} must be an integer, got {value!r}') from error


def _supplier_credentials() -> tuple[dict, ...]:
    """Parse SUPPLIER_CREDENTIALS (a JSON list of supplier objects)."""

    value = os.environ.get('SUPPLIER_CREDENTIALS', '').strip()
    if not value:
        return ()
    entries = json.loads(value)
    if not isinstance(entries, list):
        raise ValueError('SUPPLIER_CREDENTIALS must be a JSON list')
    return tuple(entries)


def load_settings() -> Settings:
    """
    Read the current environment into a Settings instance.

    Read on every call (not at import) so tests can patch os.environ.
    """

    log_level = logging.getLevelName(
        os.environ.get('LOG_LEVEL', 'INFO').strip().upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    return Settings(
        database_url=os.environ.get('DATABASE_URL') or None,
        jwt_secret=os.environ.get('JWT_SECRET') or None,
        jwt_expires_in=_int_setting('JWT_EXPIRES_IN', DEFAULT_JWT_EXPIRES_IN),
        statement_timeout_ms=_int_setting('STATEMENT_TIMEOUT_MS',
                                          DEFAULT_STATEMENT_TIMEOUT_MS),
        supplier_credentials=_supplier_credentials(),
        log_level=log_level,
        log_dir=os.environ.get('LOG_DIR') or None,
        port=_int_setting('PORT', DEFAULT_PORT))
