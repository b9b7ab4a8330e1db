"""
Shared database configuration for the registry scripts.
Reads credentials from .env file or environment variables.
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

# .env at project root
_ENV_PATH = Path(__file__).resolve().parent / '.env'


@dataclass(frozen=True)
class DBConfig:
    """Connection settings for the record store."""
    host: str = 'localhost'
    port: int = 5432
    database: str = 'postgres'
    user: str = 'postgres'
    password: str = ''
    # Full DSN; wins over the individual fields when set
    url: Optional[str] = None

    @classmethod
    def from_env(cls, env_path: Optional[Path] = None) -> 'DBConfig':
        """Build a config from the environment, loading .env first."""
        load_dotenv(env_path or _ENV_PATH, override=False)
        return cls(
            host=os.environ.get('DB_HOST', 'localhost'),
            port=int(os.environ.get('DB_PORT', '5432')),
            database=os.environ.get('DB_NAME', 'postgres'),
            user=os.environ.get('DB_USER', 'postgres'),
            password=os.environ.get('DB_PASSWORD', ''),
            url=os.environ.get('DATABASE_URL') or None,
        )

    def connect_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for psycopg2.connect()."""
        if self.url:
            return {'dsn': self.url}
        return {
            'host': self.host,
            'port': self.port,
            'database': self.database,
            'user': self.user,
            'password': self.password,
        }

    def describe(self) -> str:
        """Connection target without credentials, for log lines."""
        if self.url:
            target = self.url.rsplit('@', 1)[-1]
            return target.split('?', 1)[0]
        return f"{self.host}:{self.port}/{self.database}"


def get_connection(config: Optional[DBConfig] = None, cursor_factory=None):
    """Get a database connection using the given (or environment) config."""
    import psycopg2
    cfg = config or DBConfig.from_env()
    kwargs = cfg.connect_kwargs()
    if cursor_factory:
        kwargs['cursor_factory'] = cursor_factory
    return psycopg2.connect(**kwargs)
