"""Dagster Definitions - Repository Configuration.

Defines jobs, resources, and sensors for the metadata migration and
dual-write pipelines.
"""

from dagster import Definitions, EnvVar

from .jobs import data_migration_job, dual_write_job
from .resources import DualWriteResource, MinIOResource, MongoDBResource, PostgresResource
from .sensors import completion_event_sensor


# =============================================================================
# Definitions
# =============================================================================

defs = Definitions(
    jobs=[
        data_migration_job,  # Manual: bulk migration passes
        dual_write_job,  # Sensor-driven: one completion event per run
    ],
    resources={
        "minio": MinIOResource(
            endpoint=EnvVar("MINIO_ENDPOINT"),
            access_key=EnvVar("MINIO_ROOT_USER"),
            secret_key=EnvVar("MINIO_ROOT_PASSWORD"),
            use_ssl=False,
            landing_bucket="landing-zone",
            archive_bucket="system",
        ),
        "mongodb": MongoDBResource(
            connection_string=EnvVar("MONGO_CONNECTION_STRING"),
            database="cumulus",
        ),
        "postgres": PostgresResource(
            host=EnvVar("POSTGRES_HOST"),
            user=EnvVar("POSTGRES_USER"),
            password=EnvVar("POSTGRES_PASSWORD"),
            port=5432,
            database="cumulus",
        ),
        "dual_write": DualWriteResource(
            minimum_version=EnvVar("RDS_DEPLOYMENT_CUMULUS_VERSION"),
            dead_letter_on_relational_failure=False,
        ),
    },
    schedules=[],
    sensors=[
        completion_event_sensor,  # Routes completion events to dual_write_job
    ],
)
