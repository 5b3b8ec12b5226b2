"""
Shared pytest fixtures for the migration engine tests.

Provides a file-backed SQLite relational store carrying the full table
contract, seeded reference rows, an in-memory MongoDB, and factories for
source records and completion messages.
"""

import pytest
import mongomock
from sqlalchemy import create_engine, event, insert, select

from libs.migration import tables


EXECUTION_ARN_PREFIX = "arn:aws:states:us-east-1:123456789012:execution:IngestGranule"
STATE_MACHINE_ARN = "arn:aws:states:us-east-1:123456789012:stateMachine:IngestGranule"
CONSOLE_URL_PREFIX = "https://console.aws.amazon.com/states/home?region=us-east-1#/executions/details/"

COLLECTION_ID = "MOD09GQ___006"
PROVIDER_ID = "s3_provider"
ASYNC_OPERATION_ID = "0eb8e809-8790-5409-1239-bcd9e8d28b8e"

CREATED_AT = 1_600_000_000_000
UPDATED_AT = 1_600_000_100_000


def execution_arn(name: str) -> str:
    return f"{EXECUTION_ARN_PREFIX}:{name}"


def execution_url(name: str) -> str:
    return f"{CONSOLE_URL_PREFIX}{execution_arn(name)}"


# =============================================================================
# Relational Store Fixtures
# =============================================================================

@pytest.fixture
def engine(tmp_path):
    """SQLite engine with every table the migration engine writes."""
    engine = create_engine(f"sqlite:///{tmp_path / 'cumulus.db'}")

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # pysqlite only emits BEGIN itself for DML; hand transaction control
        # to SQLAlchemy so SAVEPOINTs behave.
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    tables.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def reference_ids(engine):
    """Seed the collection, provider and async operation referenced by the factories."""
    with engine.begin() as conn:
        collection = conn.execute(
            insert(tables.collections).values(name="MOD09GQ", version="006")
        ).inserted_primary_key[0]
        provider = conn.execute(
            insert(tables.providers).values(name=PROVIDER_ID)
        ).inserted_primary_key[0]
        async_operation = conn.execute(
            insert(tables.async_operations).values(id=ASYNC_OPERATION_ID, status="RUNNING")
        ).inserted_primary_key[0]
    return {
        "collection": collection,
        "provider": provider,
        "async_operation": async_operation,
    }


@pytest.fixture
def fetch_rows(engine):
    """Return all rows of a table as dicts."""

    def _fetch(table):
        with engine.connect() as conn:
            return [dict(row._mapping) for row in conn.execute(select(table))]

    return _fetch


# =============================================================================
# Key-Value Store Fixtures
# =============================================================================

@pytest.fixture
def mongomock_client():
    """In-memory MongoDB client for tests."""
    return mongomock.MongoClient()


@pytest.fixture
def source_db(mongomock_client):
    """Source database holding the executions, granules and pdrs collections."""
    return mongomock_client["cumulus"]


# =============================================================================
# Source Record Factories
# =============================================================================

@pytest.fixture
def make_execution():
    """Factory for execution documents as stored in the key-value store."""

    def _make(name: str = "exec-1", **overrides) -> dict:
        record = {
            "arn": execution_arn(name),
            "name": name,
            "status": "completed",
            "execution": execution_url(name),
            "type": "IngestGranule",
            "collectionId": COLLECTION_ID,
            "cumulusVersion": "9.0.0",
            "duration": 100.0,
            "tasks": {"0": {"name": "SyncGranule", "version": "1"}},
            "finalPayload": {"granules": []},
            "createdAt": CREATED_AT,
            "updatedAt": UPDATED_AT,
            "timestamp": UPDATED_AT,
        }
        record.update(overrides)
        return record

    return _make


@pytest.fixture
def make_file():
    """Factory for file entries embedded in granule documents."""

    def _make(name: str = "granule-1.hdf", **overrides) -> dict:
        record = {
            "bucket": "protected",
            "key": f"MOD09GQ/{name}",
            "fileName": name,
            "size": 1024,
            "checksum": "bogus-checksum",
            "checksumType": "md5",
            "type": "data",
        }
        record.update(overrides)
        return record

    return _make


@pytest.fixture
def make_granule(make_file):
    """Factory for granule documents with two files."""

    def _make(granule_id: str = "MOD09GQ.A2017025.h21v00.006", **overrides) -> dict:
        record = {
            "granuleId": granule_id,
            "collectionId": COLLECTION_ID,
            "status": "completed",
            "execution": execution_url("exec-1"),
            "provider": PROVIDER_ID,
            "published": False,
            "productVolume": 2048,
            "timeToArchive": 1.5,
            "timeToPreprocess": 2.5,
            "files": [
                make_file(f"{granule_id}.hdf"),
                make_file(f"{granule_id}.hdf.met", size=1024, type="metadata"),
            ],
            "createdAt": CREATED_AT,
            "updatedAt": UPDATED_AT,
            "timestamp": UPDATED_AT,
        }
        record.update(overrides)
        return record

    return _make


@pytest.fixture
def make_pdr():
    """Factory for PDR documents."""

    def _make(name: str = "MOD09GQ_1granule.PDR", **overrides) -> dict:
        record = {
            "pdrName": name,
            "collectionId": COLLECTION_ID,
            "provider": PROVIDER_ID,
            "status": "completed",
            "execution": execution_url("exec-1"),
            "progress": 100,
            "PANSent": True,
            "PANmessage": "PAN sent",
            "stats": {"processing": 0, "completed": 1, "failed": 0, "total": 1},
            "address": "s3://pdrs/MOD09GQ_1granule.PDR",
            "originalUrl": "s3://pdrs/MOD09GQ_1granule.PDR",
            "createdAt": CREATED_AT,
            "updatedAt": UPDATED_AT,
            "timestamp": UPDATED_AT,
        }
        record.update(overrides)
        return record

    return _make


@pytest.fixture
def make_message():
    """Factory for workflow completion messages."""

    def _make(
        name: str = "exec-1",
        version: str = "9.0.0",
        status: str = "completed",
        granules: list | None = None,
        pdr: dict | None = None,
        **cumulus_meta,
    ) -> dict:
        payload: dict = {
            "granules": granules if granules is not None else [
                {
                    "granuleId": "MOD09GQ.A2017025.h21v00.006",
                    "status": status,
                    "files": [
                        {
                            "bucket": "protected",
                            "key": "MOD09GQ/MOD09GQ.A2017025.h21v00.006.hdf",
                            "fileName": "MOD09GQ.A2017025.h21v00.006.hdf",
                            "size": 1024,
                        },
                    ],
                }
            ],
        }
        if pdr is not None:
            payload["pdr"] = pdr
        meta = {
            "execution_name": name,
            "state_machine": STATE_MACHINE_ARN,
            "cumulus_version": version,
            "workflow_start_time": CREATED_AT,
            "workflow_stop_time": UPDATED_AT,
        }
        meta.update(cumulus_meta)
        return {
            "cumulus_meta": meta,
            "meta": {
                "status": status,
                "workflow_name": "IngestGranule",
                "collection": {"name": "MOD09GQ", "version": "006"},
                "provider": {"id": PROVIDER_ID},
                "workflow_tasks": {"0": {"name": "SyncGranule"}},
            },
            "payload": payload,
        }

    return _make
