# =============================================================================
# MinIO Resource - S3-Compatible Object Storage Operations
# =============================================================================
# Completion-event inbox (landing bucket) and error-log archive (archive
# bucket). Used by the completion sensor to list events and by ops to read,
# archive and dead-letter them.
# =============================================================================

from pathlib import Path
import json

from dagster import ConfigurableResource
from minio import Minio
from minio.commonconfig import CopySource
from minio.error import S3Error
from pydantic import Field

__all__ = ["MinIOResource"]

EVENTS_PREFIX = "events/"
DEAD_LETTER_PREFIX = "dead-letter/"


class MinIOResource(ConfigurableResource):
    """
    Dagster resource for MinIO (S3-compatible object storage) operations.

    Provides methods for:
    - Listing and retrieving completion events from the landing bucket
    - Moving processed events to archive or dead-letter prefixes
    - Uploading migration error logs to the archive bucket

    Configuration matches MinIOSettings from libs.models.config.

    Attributes:
        endpoint: MinIO server endpoint (host:port)
        access_key: Access key for authentication
        secret_key: Secret key for authentication
        use_ssl: Whether to use SSL/TLS (default: False)
        landing_bucket: Completion event bucket name (default: "landing-zone")
        archive_bucket: Error archive bucket name (default: "system")
    """

    endpoint: str = Field(..., description="MinIO server endpoint (host:port)")
    access_key: str = Field(..., description="Access key for authentication")
    secret_key: str = Field(..., description="Secret key for authentication")
    use_ssl: bool = Field(False, description="Whether to use SSL/TLS")
    landing_bucket: str = Field("landing-zone", description="Completion event bucket name")
    archive_bucket: str = Field("system", description="Error archive bucket name")

    def get_client(self) -> Minio:
        """Create a MinIO client instance."""
        return Minio(
            self.endpoint,
            access_key=self.access_key,
            secret_key=self.secret_key,
            secure=self.use_ssl,
        )

    def list_events(self) -> list[str]:
        """
        List pending completion events in the landing bucket.

        Scans the ``events/`` prefix and returns keys of ``.json`` objects.

        Raises:
            RuntimeError: If the landing bucket does not exist
            S3Error: On other storage errors
        """
        client = self.get_client()

        try:
            objects = client.list_objects(
                self.landing_bucket,
                prefix=EVENTS_PREFIX,
                recursive=True,
            )
            return [
                obj.object_name
                for obj in objects
                if obj.object_name.endswith(".json")
            ]
        except S3Error as exc:
            if exc.code == "NoSuchBucket":
                raise RuntimeError(
                    f"Landing bucket '{self.landing_bucket}' does not exist"
                ) from exc
            raise

    def get_event(self, key: str) -> dict:
        """
        Download and parse one completion event.

        Raises:
            RuntimeError: If the object is missing or is not valid JSON
        """
        client = self.get_client()

        try:
            response = client.get_object(self.landing_bucket, key)
            data = response.read()
            response.close()
            response.release_conn()
            return json.loads(data)
        except S3Error as exc:
            if exc.code == "NoSuchKey":
                raise RuntimeError(
                    f"Event '{key}' not found in bucket '{self.landing_bucket}'"
                ) from exc
            raise
        except json.JSONDecodeError as exc:
            raise RuntimeError(f"Event '{key}' contains invalid JSON: {exc}") from exc

    def _move(self, key: str, destination: str) -> str:
        client = self.get_client()
        client.copy_object(
            self.landing_bucket,
            destination,
            CopySource(self.landing_bucket, key),
        )
        # Tolerate NotFound: already moved
        try:
            client.remove_object(self.landing_bucket, key)
        except S3Error as exc:
            if exc.code != "NoSuchKey":
                raise
        return destination

    def move_to_archive(self, key: str) -> str:
        """Move a processed event to ``archive/<key>`` and return the new key."""
        return self._move(key, f"archive/{key}")

    def move_to_dead_letter(self, key: str) -> str:
        """Move a failed event to ``dead-letter/<key>`` and return the new key."""
        return self._move(key, f"{DEAD_LETTER_PREFIX}{key}")

    def upload_error_archive(self, local_path: Path, key: str) -> None:
        """
        Upload a migration error log to the archive bucket.

        Raises:
            FileNotFoundError: If ``local_path`` does not exist
            S3Error: If upload fails
        """
        path = Path(local_path)
        if not path.exists():
            raise FileNotFoundError(f"Local file not found: {local_path}")

        client = self.get_client()
        with open(path, "rb") as file_data:
            client.put_object(
                self.archive_bucket,
                key,
                file_data,
                length=path.stat().st_size,
                content_type="application/json",
            )
