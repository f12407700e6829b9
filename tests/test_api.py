"""HTTP API tests through FastAPI's TestClient."""

import json
import time

from fastapi.testclient import TestClient

from chatlens.api import create_app
from chatlens.pipeline import AnalysisPipeline
from chatlens.providers import Providers
from conftest import FakeProvider, make_messages, to_export

REPLY = json.dumps({"sentimentScore": 55, "insights": [{"title": "🎵 리듬", "description": "좋아요"}]},
                   ensure_ascii=False)


def make_client():
    providers = Providers(deep_analysis=None, simple_analysis=FakeProvider([REPLY]))
    return TestClient(create_app(AnalysisPipeline(providers)))


def poll(client, job_id):
    job = None
    for _ in range(100):
        job = client.get(f"/api/analysis/{job_id}").json()
        if job["status"] != "processing":
            break
        time.sleep(0.02)
    return job


def test_health():
    with make_client() as client:
        response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "online", "path": "simple"}


def test_submit_and_poll():
    with make_client() as client:
        response = client.post("/api/analyze", json={
            "fileName": "chat.txt",
            "fileContent": to_export(make_messages(12)),
            "userPurpose": "대화 습관 점검",
            "primaryRelationship": "친구",
        })
        assert response.status_code == 200
        created = response.json()
        assert created["status"] == "processing"
        assert created["fileName"] == "chat.txt"
        assert created["messages"] == []
        job = poll(client, created["id"])

    assert job["status"] == "completed"
    assert len(job["messages"]) == 12
    assert job["stats"]["totalMessages"] == 12
    assert job["pipelinePath"] == "simple"
    assert job["insights"] == [{"title": "🎵 리듬", "description": "좋아요"}]
    assert job["stats"]["sentimentScore"] == 55


def test_missing_purpose_is_bad_request():
    with make_client() as client:
        response = client.post("/api/analyze", json={
            "fileName": "chat.txt",
            "fileContent": to_export(make_messages(3)),
            "userPurpose": "",
        })
    assert response.status_code == 400
    assert "purpose" in response.json()["detail"]


def test_unrecognized_file_is_accepted_then_fails():
    with make_client() as client:
        response = client.post("/api/analyze", json={
            "fileName": "notes.txt",
            "fileContent": "그냥 메모 한 줄",
            "userPurpose": "대화 습관 점검",
        })
        assert response.status_code == 200
        job = poll(client, response.json()["id"])

    assert job["status"] == "failed"
    assert job["error"] == "No chat messages recognized in file"


def test_unknown_job_is_not_found():
    with make_client() as client:
        response = client.get("/api/analysis/does-not-exist")
    assert response.status_code == 404
