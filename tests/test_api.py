"""
API tests through FastAPI's TestClient

The app starts with the in-memory store and the bundled v1 survey
(see conftest.py); each test gets a fresh store via the lifespan.
"""

import pytest
from fastapi.testclient import TestClient

from server.main import app
from server.middleware.metrics import _normalize_endpoint
from userland.auth import generate_access_token

SUBMIT_URL = "/api/common-ground/responses"
GROUPS_URL = "/api/common-ground/groups"


def auth(user_id: str, name: str = None) -> dict:
    return {"Authorization": f"Bearer {generate_access_token(user_id, name=name)}"}


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


def submit(client, user_id, answers, version="v1"):
    body = {
        "version": version,
        "answers": [{"questionId": q, "optionId": o} for q, o in answers],
    }
    return client.post(SUBMIT_URL, json=body, headers=auth(user_id))


def create_group(client, user_id, **body):
    response = client.post(GROUPS_URL, json=body, headers=auth(user_id))
    assert response.status_code == 201
    return response.json()


class TestMonitoring:
    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["service"] == "Common Ground API"

    def test_health(self, client):
        data = client.get("/api/health").json()
        assert data["checks"]["store"]["status"] == "healthy"
        assert "commonGround_survey_v1.json" in data["checks"]["surveys"]["files"]
        assert data["status"] == "healthy"

    def test_metrics(self, client):
        client.get("/")
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "commonground_api_requests_total" in response.text

    def test_request_id_echoed(self, client):
        response = client.get("/", headers={"X-Request-ID": "abc-123"})
        assert response.headers["X-Request-ID"] == "abc-123"


class TestAuth:
    def test_missing_token(self, client):
        body = {"version": "v1", "answers": [{"questionId": "q1", "optionId": "q1-0"}]}
        response = client.post(SUBMIT_URL, json=body)
        assert response.status_code == 401
        assert response.json() == {"detail": "You must be logged in."}

    def test_garbage_token(self, client):
        response = client.get(
            "/api/common-ground/topic-scores?version=v1",
            headers={"Authorization": "Bearer not-a-jwt"},
        )
        assert response.status_code == 401


class TestSubmitResponses:
    def test_submit_and_read_scores(self, client):
        response = submit(client, "u1", [("q1", "q1-0"), ("q2", "q2-4"), ("q3", "q3-1")])

        assert response.status_code == 200
        assert response.json() == {"message": "ok", "responseCount": 3, "topicCount": 2, "skippedCount": 0}

        scores = client.get("/api/common-ground/topic-scores?version=v1", headers=auth("u1")).json()
        by_topic = {s["topicId"]: s for s in scores}
        assert by_topic["cat-1"]["meanScore"] == 0.0
        assert by_topic["cat-1"]["answeredCount"] == 2
        assert by_topic["cat-2"]["meanScore"] == 50.0

    def test_unknown_answers_skipped(self, client):
        response = submit(client, "u1", [("q1", "q1-0"), ("q1", "q1-99"), ("zz", "zz-0")])

        assert response.status_code == 200
        assert response.json()["responseCount"] == 1
        assert response.json()["skippedCount"] == 2

    def test_empty_answers_is_bad_request(self, client):
        response = submit(client, "u1", [])
        assert response.status_code == 400
        assert response.json() == {"detail": "Invalid request body."}

    def test_malformed_body_is_bad_request(self, client):
        response = client.post(SUBMIT_URL, json={"answers": "nope"}, headers=auth("u1"))
        assert response.status_code == 400
        assert response.json() == {"detail": "Invalid request body."}

    def test_unknown_version(self, client):
        response = submit(client, "u1", [("q1", "q1-0")], version="v9")
        assert response.status_code == 404
        assert response.json()["detail"] == "Survey version v9 not found."

    def test_topic_scores_empty_for_new_user(self, client):
        response = client.get("/api/common-ground/topic-scores?version=v1", headers=auth("new"))
        assert response.status_code == 200
        assert response.json() == []

    def test_topic_scores_require_version(self, client):
        response = client.get("/api/common-ground/topic-scores", headers=auth("u1"))
        assert response.status_code == 400


class TestPairwiseAndSurvey:
    def test_pairwise(self, client):
        submit(client, "u1", [("q1", "q1-0"), ("q5", "q5-0")])
        submit(client, "u2", [("q1", "q1-1"), ("q5", "q5-2")])

        response = client.get("/api/common-ground/pairwise/u2?version=v1", headers=auth("u1"))

        assert response.status_code == 200
        data = response.json()
        assert data["sharedTopics"] == 2
        assert data["safeTopics"] == []
        assert data["hotTopics"] == ["cat-1", "cat-3"]
        assert data["pairwisePct"] == 0.0

    def test_survey_is_public(self, client):
        response = client.get("/api/common-ground/surveys/v1")
        assert response.status_code == 200
        assert [t["id"] for t in response.json()["topics"]] == ["cat-1", "cat-2", "cat-3", "cat-4"]

    def test_unknown_survey(self, client):
        assert client.get("/api/common-ground/surveys/v9").status_code == 404


class TestGroups:
    def test_create_group(self, client):
        data = create_group(client, "owner", nickname="Neighbors")
        assert data["groupId"]
        assert len(data["groupCode"]) == 8

    def test_create_requires_auth(self, client):
        assert client.post(GROUPS_URL, json={}).status_code == 401

    def test_nickname_too_long(self, client):
        response = client.post(GROUPS_URL, json={"nickname": "x" * 101}, headers=auth("owner"))
        assert response.status_code == 400

    def test_join_flow(self, client):
        group = create_group(client, "owner")
        join_url = f"{GROUPS_URL}/{group['groupId']}/join"

        wrong = client.post(join_url, json={"groupCode": "WRONG123"}, headers=auth("u2"))
        assert wrong.status_code == 400
        assert wrong.json() == {"detail": "Invalid group code."}

        ok = client.post(join_url, json={"groupCode": group["groupCode"]}, headers=auth("u2"))
        assert ok.status_code == 200
        assert ok.json() == {"message": "Successfully joined group."}

        again = client.post(join_url, json={"groupCode": group["groupCode"]}, headers=auth("u2"))
        assert again.status_code == 409
        assert again.json() == {"detail": "You are already a member of this group."}

    def test_join_unknown_group(self, client):
        response = client.post(f"{GROUPS_URL}/999/join", json={"groupCode": "ABCDEFGH"}, headers=auth("u2"))
        assert response.status_code == 404
        assert response.json() == {"detail": "Group not found."}

    def test_join_requires_code(self, client):
        group = create_group(client, "owner")
        response = client.post(f"{GROUPS_URL}/{group['groupId']}/join", json={}, headers=auth("u2"))
        assert response.status_code == 400

    def test_group_reads(self, client):
        group = create_group(client, "owner")
        group_id = group["groupId"]
        client.post(f"{GROUPS_URL}/{group_id}/join", json={"groupCode": group["groupCode"]}, headers=auth("u2"))
        submit(client, "owner", [("q1", "q1-0"), ("q3", "q3-0")])
        submit(client, "u2", [("q1", "q1-1"), ("q3", "q3-4")])

        topics = client.get(f"{GROUPS_URL}/{group_id}/topic-scores?version=v1", headers=auth("owner")).json()
        by_topic = {t["topicId"]: t for t in topics}
        assert by_topic["cat-1"]["range"] == 50
        assert by_topic["cat-1"]["label"] == "hot"
        assert by_topic["cat-2"]["range"] == 200

        vectors = client.get(f"{GROUPS_URL}/{group_id}/category-vectors?version=v1", headers=auth("owner")).json()
        assert {v["userId"]: v["scores"] for v in vectors}["owner"] == [100.0, 100.0, 0.0, 0.0]

        clusters = client.get(f"{GROUPS_URL}/{group_id}/clusters?version=v1", headers=auth("owner")).json()
        assert len(clusters["clusters"]) == 1
        assert len(clusters["pca2d"]) == 2

        compatibles = client.get(
            f"{GROUPS_URL}/{group_id}/category/1/compatibles?version=v1", headers=auth("owner")
        ).json()
        assert compatibles["totalMembers"] == 2
        assert compatibles["size"] == 1

        responses = client.get(
            f"{GROUPS_URL}/{group_id}/category/2/responses?version=v1", headers=auth("owner")
        ).json()
        q3 = next(q for q in responses if q["questionId"] == "q3")
        assert {c["optionId"]: c["count"] for c in q3["counts"]}["q3-0"] == 1

        pairwise = client.get(f"{GROUPS_URL}/{group_id}/pairwise/u2?version=v1", headers=auth("owner")).json()
        assert pairwise["sharedTopics"] == 2

    def test_group_read_unknown_group(self, client):
        response = client.get(f"{GROUPS_URL}/999/topic-scores?version=v1", headers=auth("owner"))
        assert response.status_code == 404


class TestEndpointNormalization:
    @pytest.mark.parametrize(
        "path,expected",
        [
            ("/api/common-ground/groups/42/join", "/api/common-ground/groups/:group_id/join"),
            ("/api/common-ground/pairwise/u-123", "/api/common-ground/pairwise/:user_id"),
            (
                "/api/common-ground/groups/7/category/3/compatibles",
                "/api/common-ground/groups/:group_id/category/:category_id/compatibles",
            ),
            ("/api/common-ground/surveys/v1", "/api/common-ground/surveys/:version"),
            ("/api/health", "/api/health"),
        ],
    )
    def test_normalize(self, path, expected):
        assert _normalize_endpoint(path) == expected
