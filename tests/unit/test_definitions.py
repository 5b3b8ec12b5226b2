"""
Unit tests for the Dagster Definitions object.

Loads the code location without connecting to any store.
"""

from services.dagster.migration_pipelines.definitions import defs


def test_jobs_are_registered():
    assert defs.get_job_def("data_migration_job").name == "data_migration_job"
    assert defs.get_job_def("dual_write_job").name == "dual_write_job"


def test_data_migration_job_ops():
    job = defs.get_job_def("data_migration_job")
    op_names = {node.name for node in job.graph.nodes}

    assert op_names == {
        "load_migration_params",
        "migrate_executions_op",
        "migrate_granules_and_files_op",
        "migrate_pdrs_op",
        "summarize_migration_op",
    }


def test_completion_sensor_targets_dual_write_job():
    sensor = defs.get_sensor_def("completion_event_sensor")
    assert sensor.job_name == "dual_write_job"
