# =============================================================================
# Configuration Models Module
# =============================================================================
# Provides Pydantic Settings models for all service configurations:
# - MinIOSettings: event inbox and error archive object storage
# - MongoSettings: key-value store of record (source collections)
# - PostgresSettings: relational target store
# - DualWriteSettings: steady-state dual-write gate configuration
# =============================================================================

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from packaging.version import InvalidVersion, Version

__all__ = [
    "MinIOSettings",
    "MongoSettings",
    "PostgresSettings",
    "DualWriteSettings",
]


# =============================================================================
# MinIO Settings (Event Inbox & Error Archive)
# =============================================================================

class MinIOSettings(BaseSettings):
    """
    Configuration for MinIO (S3-compatible object storage).

    Maps environment variables:
    - MINIO_ENDPOINT → endpoint
    - MINIO_ROOT_USER → access_key
    - MINIO_ROOT_PASSWORD → secret_key
    - MINIO_USE_SSL → use_ssl
    - MINIO_LANDING_BUCKET → landing_bucket
    - MINIO_ARCHIVE_BUCKET → archive_bucket

    Attributes:
        endpoint: MinIO server endpoint (host:port)
        access_key: Access key (maps from MINIO_ROOT_USER)
        secret_key: Secret key (maps from MINIO_ROOT_PASSWORD)
        use_ssl: Whether to use SSL/TLS (default: False)
        landing_bucket: Bucket receiving completion events (default: "landing-zone")
        archive_bucket: System bucket receiving error archives (default: "system")
    """

    endpoint: str = Field(..., validation_alias="MINIO_ENDPOINT", description="MinIO server endpoint (host:port)")
    access_key: str = Field(..., validation_alias="MINIO_ROOT_USER", description="Access key (maps from MINIO_ROOT_USER)")
    secret_key: str = Field(..., validation_alias="MINIO_ROOT_PASSWORD", description="Secret key (maps from MINIO_ROOT_PASSWORD)")
    use_ssl: bool = Field(False, validation_alias="MINIO_USE_SSL", description="Whether to use SSL/TLS")
    landing_bucket: str = Field("landing-zone", validation_alias="MINIO_LANDING_BUCKET", description="Completion event bucket name")
    archive_bucket: str = Field("system", validation_alias="MINIO_ARCHIVE_BUCKET", description="Error archive bucket name")

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",  # Ignore unrelated env vars from shared .env files
    )


# =============================================================================
# MongoDB Settings (Key-Value Store of Record)
# =============================================================================

class MongoSettings(BaseSettings):
    """
    Configuration for MongoDB, the key-value store of record.

    Maps environment variables:
    - MONGO_HOST → host
    - MONGO_PORT → port
    - MONGO_INITDB_ROOT_USERNAME → username
    - MONGO_INITDB_ROOT_PASSWORD → password
    - MONGO_DATABASE → database
    - MONGO_AUTH_SOURCE → auth_source
    - MONGO_EXECUTIONS_COLLECTION / MONGO_GRANULES_COLLECTION /
      MONGO_PDRS_COLLECTION → source collection names

    Attributes:
        host: MongoDB host (default: "mongodb")
        port: MongoDB port (default: 27017)
        username: MongoDB username
        password: MongoDB password
        database: Database name (default: "cumulus")
        auth_source: Authentication source (default: "admin")
    """

    host: str = Field("mongodb", validation_alias="MONGO_HOST", description="MongoDB host")
    port: int = Field(27017, validation_alias="MONGO_PORT", description="MongoDB port")
    username: str = Field(..., validation_alias="MONGO_INITDB_ROOT_USERNAME", description="MongoDB username (maps from MONGO_INITDB_ROOT_USERNAME)")
    password: str = Field(..., validation_alias="MONGO_INITDB_ROOT_PASSWORD", description="MongoDB password (maps from MONGO_INITDB_ROOT_PASSWORD)")
    database: str = Field("cumulus", validation_alias="MONGO_DATABASE", description="Database name")
    auth_source: str = Field("admin", validation_alias="MONGO_AUTH_SOURCE", description="Authentication source")
    executions_collection: str = Field("executions", validation_alias="MONGO_EXECUTIONS_COLLECTION")
    granules_collection: str = Field("granules", validation_alias="MONGO_GRANULES_COLLECTION")
    pdrs_collection: str = Field("pdrs", validation_alias="MONGO_PDRS_COLLECTION")

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",  # Ignore unrelated env vars from shared .env files
    )

    @property
    def connection_string(self) -> str:
        """
        Build MongoDB connection URI.

        Format: mongodb://[username]:[password]@[host]:[port]/[database]?authSource=[auth_source]

        Returns:
            MongoDB connection URI string
        """
        return (
            f"mongodb://{self.username}:{self.password}@"
            f"{self.host}:{self.port}/{self.database}?authSource={self.auth_source}"
        )


# =============================================================================
# Postgres Settings (Relational Target Store)
# =============================================================================

class PostgresSettings(BaseSettings):
    """
    Configuration for the relational target store.

    Maps environment variables:
    - POSTGRES_HOST → host
    - POSTGRES_PORT → port
    - POSTGRES_USER → user
    - POSTGRES_PASSWORD → password
    - POSTGRES_DB → database

    Attributes:
        host: PostgreSQL host (default: "postgres")
        port: PostgreSQL port (default: 5432)
        user: PostgreSQL user
        password: PostgreSQL password
        database: Database name (default: "cumulus")
    """

    host: str = Field("postgres", validation_alias="POSTGRES_HOST", description="PostgreSQL host")
    port: int = Field(5432, validation_alias="POSTGRES_PORT", description="PostgreSQL port")
    user: str = Field(..., validation_alias="POSTGRES_USER", description="PostgreSQL user")
    password: str = Field(..., validation_alias="POSTGRES_PASSWORD", description="PostgreSQL password")
    database: str = Field("cumulus", validation_alias="POSTGRES_DB", description="Database name")

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",  # Ignore unrelated env vars from shared .env files
    )

    @property
    def connection_string(self) -> str:
        """
        Build SQLAlchemy connection URI (psycopg2 driver).

        Format: postgresql://[user]:[password]@[host]:[port]/[database]

        Returns:
            PostgreSQL connection URI string
        """
        return (
            f"postgresql://{self.user}:{self.password}@"
            f"{self.host}:{self.port}/{self.database}"
        )


# =============================================================================
# Dual-Write Settings
# =============================================================================

class DualWriteSettings(BaseSettings):
    """
    Configuration for the steady-state dual-write gate.

    Maps environment variables:
    - RDS_DEPLOYMENT_CUMULUS_VERSION → minimum_version (required)
    - DUAL_WRITE_DEAD_LETTER_ON_RELATIONAL_FAILURE → dead_letter_on_relational_failure

    A missing minimum version is a startup error: constructing the settings
    raises ``pydantic.ValidationError``.

    Attributes:
        minimum_version: First release whose messages may be written relationally
        dead_letter_on_relational_failure: Also dead-letter events whose only
            failure was the relational write (default: False)
    """

    minimum_version: str = Field(
        ...,
        validation_alias="RDS_DEPLOYMENT_CUMULUS_VERSION",
        description="Minimum message version eligible for relational writes",
    )
    dead_letter_on_relational_failure: bool = Field(
        False,
        validation_alias="DUAL_WRITE_DEAD_LETTER_ON_RELATIONAL_FAILURE",
        description="Dead-letter events whose relational write failed",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",  # Ignore unrelated env vars from shared .env files
        populate_by_name=True,
    )

    @field_validator("minimum_version")
    @classmethod
    def validate_minimum_version(cls, v: str) -> str:
        try:
            Version(v)
        except InvalidVersion as exc:
            raise ValueError(f"'{v}' is not a valid version") from exc
        return v
