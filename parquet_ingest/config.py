"""
Configuration for the ingestion pipeline.

Settings are read from the process environment (and a local .env file) once
per invocation and handed to the components that need them.
"""

import os
import tempfile
from typing import Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator

from parquet_ingest.errors import ConfigError

load_dotenv()

# Environment variable names used by the original RDS deployment
DATABASE_ENV_VARS = {
    'host': 'HOST',
    'port': 'PORT',
    'user': 'rdsuser',
    'password': 'rdspassword',
    'dbname': 'rdsdb',
}


class DatabaseSettings(BaseModel):
    """Connection parameters for the Postgres target."""

    model_config = ConfigDict(frozen=True)

    host: str = Field(min_length=1)
    port: int = Field(ge=1, le=65535)
    user: str = Field(min_length=1)
    password: SecretStr
    dbname: str = Field(min_length=1)
    sslmode: str = 'disable'
    connect_timeout: int = Field(default=10, ge=0)

    @field_validator('password')
    @classmethod
    def validate_password(cls, v: SecretStr) -> SecretStr:
        if not v.get_secret_value():
            raise ValueError('password is required')
        return v

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "DatabaseSettings":
        """Build settings from environment variables.

        Raises ConfigError if a required variable is missing or the port
        is not a valid TCP port number.
        """
        environ = os.environ if environ is None else environ

        missing = [name for name in DATABASE_ENV_VARS.values() if not environ.get(name, '').strip()]
        if missing:
            raise ConfigError(f"Missing required database settings: {', '.join(missing)}")

        raw_port = environ[DATABASE_ENV_VARS['port']].strip()
        try:
            port = int(raw_port)
        except ValueError:
            raise ConfigError(f"Invalid PORT: '{raw_port}' - expected an integer") from None

        raw_timeout = environ.get('DB_CONNECT_TIMEOUT', '10').strip()
        try:
            connect_timeout = int(raw_timeout)
        except ValueError:
            raise ConfigError(f"Invalid DB_CONNECT_TIMEOUT: '{raw_timeout}'") from None

        try:
            return cls(
                host=environ[DATABASE_ENV_VARS['host']].strip(),
                port=port,
                user=environ[DATABASE_ENV_VARS['user']].strip(),
                password=environ[DATABASE_ENV_VARS['password']],
                dbname=environ[DATABASE_ENV_VARS['dbname']].strip(),
                sslmode=environ.get('DB_SSLMODE', 'disable'),
                connect_timeout=connect_timeout,
            )
        except ValidationError as e:
            raise ConfigError(f"Invalid database settings: {e}") from e

    def connection_kwargs(self) -> dict:
        """Keyword arguments for psycopg2.connect."""
        return {
            'host': self.host,
            'port': self.port,
            'user': self.user,
            'password': self.password.get_secret_value(),
            'dbname': self.dbname,
            'sslmode': self.sslmode,
            'connect_timeout': self.connect_timeout,
        }


class StorageSettings(BaseModel):
    """Object store session and scratch space settings."""

    model_config = ConfigDict(frozen=True)

    region: str = 'us-east-1'
    profile: Optional[str] = None
    scratch_dir: str = Field(default_factory=tempfile.gettempdir)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "StorageSettings":
        environ = os.environ if environ is None else environ
        return cls(
            region=environ.get('AWS_REGION') or 'us-east-1',
            profile=environ.get('AWS_PROFILE') or None,
            scratch_dir=environ.get('SCRATCH_DIR') or tempfile.gettempdir(),
        )
