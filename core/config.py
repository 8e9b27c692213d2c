"""
Application Configuration
Add constants, secrets, env variables here
"""

from functools import lru_cache
import logging
import os
import json
from pathlib import Path
from typing import ClassVar
from pydantic import computed_field, PrivateAttr
from pydantic_settings import BaseSettings, SettingsConfigDict
import boto3
from botocore.exceptions import ClientError
from dotenv import load_dotenv

# Load .env file into os.environ so os.getenv() works correctly
# This must happen before Settings class is instantiated
env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)


def get_secret(secret_name: str, region_name: str) -> dict:
    """
    Load a JSON secret from AWS Secrets Manager.
    A ClientError is raised if the secret cannot be read.
    """
    client = boto3.session.Session().client(
        service_name="secretsmanager",
        region_name=region_name,
    )
    response = client.get_secret_value(SecretId=secret_name)
    return json.loads(response["SecretString"].replace("\n", ""))


# Define settings class for univeral access
class Settings(BaseSettings):
    # Pins the database URI regardless of env/secrets (see InMemoryDbSettings)
    FIXED_DATABASE_URI: ClassVar[str | None] = None

    # Computed or constant values
    client_origin: str | None = os.getenv("client_origin")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Secrets named by ENV_SECRETS, fetched once per Settings instance
    _secret_cache: dict | None = PrivateAttr(default=None)

    def _secrets(self) -> dict:
        if self._secret_cache is None:
            secret_name = os.getenv("ENV_SECRETS")
            self._secret_cache = {}
            if secret_name:
                try:
                    self._secret_cache = get_secret(
                        secret_name, os.getenv("AWS_REGION", "us-east-1")
                    )
                except ClientError as exc:
                    # Unreadable secrets leave only env vars and defaults
                    logging.getLogger("filecatalog").warning(
                        "Could not read secret %s: %s", secret_name, exc
                    )
        return self._secret_cache

    def _get_config_value(self, name: str, default: str | None = None) -> str | None:
        """Look up name in the environment, then in the secrets, then use default"""
        value = os.getenv(name) or self._secrets().get(name)
        return value if value is not None else default

    # SQLAlchemy - Create db connection string
    @computed_field
    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        """Build database URI from env or secrets, defaults to sqlite://"""
        if self.FIXED_DATABASE_URI:
            return self.FIXED_DATABASE_URI
        return self._get_config_value("SQLALCHEMY_DATABASE_URI", default="sqlite://")

    # AWS Credentials
    AWS_ACCESS_KEY_ID: str | None = os.getenv("AWS_ACCESS_KEY_ID")
    AWS_SECRET_ACCESS_KEY: str | None = os.getenv("AWS_SECRET_ACCESS_KEY")
    AWS_REGION: str | None = os.getenv("AWS_REGION")

    # File storage
    # "local" keeps blobs under FILE_STORAGE_ROOT, "s3" under FILE_STORAGE_BUCKET_URI
    STORAGE_BACKEND: str = os.getenv("STORAGE_BACKEND", "local")
    FILE_STORAGE_ROOT: str = os.getenv("FILE_STORAGE_ROOT", "storage")

    @computed_field
    @property
    def FILE_STORAGE_BUCKET_URI(self) -> str | None:
        """Get the S3 URI (s3://bucket/prefix/) used for blobs from env or secrets"""
        return self._get_config_value("FILE_STORAGE_BUCKET_URI")

    # Read environment variables from .env file, if it exists
    # extra='ignore' prevents validation errors from extra env vars
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


class InMemoryDbSettings(Settings):
    """Settings used by the test suite"""

    FIXED_DATABASE_URI: ClassVar[str | None] = "sqlite:///:memory:"
    TESTING: bool = True
    STORAGE_BACKEND: str = "local"


# Export settings
@lru_cache
def get_settings() -> Settings:
    """
    Get settings instance, cached for performance
    """
    if os.getenv("SETTINGS_MODE") == "test":
        return InMemoryDbSettings()
    return Settings()


if __name__ == "__main__":
    # To use in other modules
    # from core.config import get_settings
    print(get_settings().SQLALCHEMY_DATABASE_URI)
