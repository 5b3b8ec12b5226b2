"""Dagster Resources - External Service Connections."""

from .dual_write_resource import DualWriteResource
from .minio_resource import MinIOResource
from .mongodb_resource import MongoDBResource
from .postgres_resource import PostgresResource

__all__ = [
    "DualWriteResource",
    "MinIOResource",
    "MongoDBResource",
    "PostgresResource",
]
