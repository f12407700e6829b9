"""Tests for the in-memory job store."""

import pytest

from chatlens.errors import JobNotFoundError, JobStateError
from chatlens.models import Insight, JobStatus
from chatlens.store import JobStore


def test_create_and_get():
    store = JobStore()
    job = store.create("chat.txt", file_size=120, user_purpose="소통", primary_relationship="연인")
    assert store.get(job.id) == job
    assert job.status == JobStatus.PROCESSING
    assert store.get("missing") is None


def test_update_replaces_record():
    store = JobStore()
    job = store.create("chat.txt")
    updated = store.update(job.id, insights=[Insight(title="t", description="d")])
    assert store.get(job.id) is updated
    assert job.insights is None
    assert updated.insights[0].title == "t"


def test_unknown_job():
    store = JobStore()
    with pytest.raises(JobNotFoundError):
        store.require("nope")
    with pytest.raises(JobNotFoundError):
        store.update("nope", error="x")


def test_terminal_jobs_are_frozen():
    store = JobStore()
    job = store.create("chat.txt")
    store.update(job.id, status=JobStatus.FAILED, error="boom")
    with pytest.raises(JobStateError):
        store.update(job.id, status=JobStatus.COMPLETED)
    assert store.require(job.id).error == "boom"


def test_unknown_field_rejected():
    store = JobStore()
    job = store.create("chat.txt")
    with pytest.raises(ValueError):
        store.update(job.id, colour="blue")


def test_serializes_camel_case():
    store = JobStore()
    job = store.update(store.create("chat.txt").id, pipeline_path="simple")
    data = job.model_dump(mode="json", by_alias=True)
    assert data["fileName"] == "chat.txt"
    assert data["pipelinePath"] == "simple"
    assert data["status"] == "processing"
