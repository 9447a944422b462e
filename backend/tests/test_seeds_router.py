import json

import pytest
from fastapi.testclient import TestClient

from database import InMemoryQuestionStore
from generation import ContentGenerationGateway, ContentGenerator
from main import app
from routers.seeds import get_gateway, get_question_store, get_seeds_dir

BASE = "/api/admin/seeds"


class EchoGenerator(ContentGenerator):
    name = "EchoGenerator"

    async def fetch_items(self, request):
        return [
            {
                "question": f"{request.topic} question {i}?",
                "options": ["A", "B"],
                "correctAnswer": "A",
                "explanation": "A is right.",
            }
            for i in range(request.count)
        ]


@pytest.fixture
def memory_store():
    return InMemoryQuestionStore()


@pytest.fixture
def client(memory_store, tmp_path):
    gateway = ContentGenerationGateway(EchoGenerator(), max_count=100)
    app.dependency_overrides[get_question_store] = lambda: memory_store
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_seeds_dir] = lambda: str(tmp_path)
    yield TestClient(app)
    app.dependency_overrides.clear()


def _questions(*texts):
    return [
        {"id": f"ai_{i}", "question": t, "options": ["A", "B"], "correctAnswer": "A", "difficulty": "beginner"}
        for i, t in enumerate(texts)
    ]


def test_generate_returns_requested_count(client):
    res = client.post(f"{BASE}/ai-generate", json={"language": "Python", "topic": "Functions", "count": 4})

    assert res.status_code == 200
    body = res.json()
    assert body["success"] is True
    assert len(body["content"]) == 4
    assert body["content"][0]["correctAnswer"] == "A"
    assert body["metadata"]["service"] == "EchoGenerator"


def test_generate_blank_topic_is_bad_request(client):
    res = client.post(f"{BASE}/ai-generate", json={"language": "Python", "topic": ""})

    assert res.status_code == 400
    assert res.json()["success"] is False


def test_generate_malformed_body_is_bad_request(client):
    res = client.post(f"{BASE}/ai-generate", json={"language": "Python", "topic": "x", "count": "many"})
    assert res.status_code == 400


def test_generation_config(client):
    config = client.get(f"{BASE}/ai-generate").json()["config"]
    assert config["maxQuestionsPerRequest"] == 100
    assert "Python" in config["supportedLanguages"]


def test_save_generated_reports_outcomes(client, memory_store):
    payload = {"questions": _questions("What is a decorator?", "what is a  decorator?"),
               "language": "Python", "topic": "Functions"}

    body = client.post(f"{BASE}/save-generated", json=payload).json()

    assert body["success"] is True
    assert (body["savedCount"], body["duplicateCount"], body["errorCount"]) == (1, 1, 0)
    assert body["totalQuestions"] == 2
    assert [o["status"] for o in body["outcomes"]] == ["saved", "duplicate"]
    assert len(memory_store.documents) == 1

    again = client.post(f"{BASE}/save-generated", json=payload).json()
    assert again["savedCount"] == 0
    assert again["duplicateCount"] == 2


def test_save_generated_requires_questions(client):
    res = client.post(f"{BASE}/save-generated", json={"questions": [], "language": "Python", "topic": "x"})
    assert res.status_code == 400


def test_generation_stats(client):
    client.post(f"{BASE}/save-generated",
                json={"questions": _questions("What is a generator?"), "language": "Python", "topic": "Functions"})

    stats = client.get(f"{BASE}/save-generated").json()["stats"]

    assert stats["totalAIGenerated"] == 1
    assert stats["byLanguage"] == {"Python": 1}


def test_export_then_stats(client):
    res = client.post(f"{BASE}/export-to-seeds",
                      json={"questions": _questions("What is a list?"), "language": "Python", "topic": "Data Structures"})
    assert res.status_code == 200
    assert res.json()["exportedCount"] == 1

    client.post(f"{BASE}/save-generated",
                json={"questions": _questions("What is a tuple?"), "language": "Python", "topic": "Data Structures"})

    body = client.get(f"{BASE}/stats", params={"language": "Python"}).json()
    python = next(iter(body["data"].values()))
    assert python["totalQuestions"] == 2
    assert python["totalInDB"] == 1
    assert python["countsByDifficulty"]["beginner"] == 2
    assert body["defaults"]["topic"] == "Data Structures"


def test_export_into_corrupt_archive_fails(client, tmp_path):
    target = tmp_path / "python" / "python-mcq.json"
    target.parent.mkdir(parents=True)
    target.write_text("garbage", encoding="utf-8")

    res = client.post(f"{BASE}/export-to-seeds",
                      json={"questions": _questions("Q?"), "language": "Python", "topic": "Functions"})

    assert res.status_code == 500
    assert res.json()["success"] is False
    assert target.read_text(encoding="utf-8") == "garbage"


def test_metadata_endpoints(client):
    assert client.get(f"{BASE}/metadata", params={"category": "python"}).status_code == 404

    res = client.put(f"{BASE}/metadata", json={"category": "python", "metadata": {"displayName": "Python"}})
    assert res.status_code == 200
    assert res.json()["metadata"]["lastUpdated"]

    assert client.get(f"{BASE}/metadata", params={"category": "python"}).json()["displayName"] == "Python"


def test_health(client):
    body = client.get("/health").json()
    assert body["status"] == "healthy"
    assert body["database"] == "disconnected"


def _seed_archive(tmp_path):
    target = tmp_path / "python" / "python-mcq.json"
    target.parent.mkdir(parents=True)
    target.write_text(json.dumps({
        "category": "python",
        "language": "Python",
        "concepts": [
            {
                "name": "Functions",
                "difficulty": "beginner",
                "questions": [
                    {"id": "py-1", "question": "What does def do?", "options": ["Defines", "Deletes"], "correctAnswer": 0},
                    {"id": "py-2", "question": "What is *args?", "options": ["Varargs", "Pointer"], "correctAnswer": "Varargs"},
                ],
                "problems": [{"id": "py-p1", "title": "Write a decorator", "description": "Log each call."}],
            },
            {"name": "Generators", "questions": [{"question": "What does yield do?", "options": ["Pauses", "Exits"]}]},
        ],
    }), encoding="utf-8")


def test_load_seed_concepts(client, memory_store, tmp_path):
    _seed_archive(tmp_path)

    res = client.post(BASE, json={"concepts": ["Functions"]})

    assert res.status_code == 200
    body = res.json()
    assert (body["savedCount"], body["duplicateCount"], body["errorCount"]) == (3, 0, 0)
    assert body["processedFiles"] == ["python-mcq.json"]
    assert {d["topic"] for d in memory_store.documents} == {"Functions"}
    assert {d["id"] for d in memory_store.documents} == {"seed_py-1", "seed_py-2", "seed_py-p1"}

    again = client.post(BASE, json={"concepts": ["Functions", "Generators"]}).json()
    assert (again["savedCount"], again["duplicateCount"]) == (1, 3)


def test_load_seed_concepts_validation(client, tmp_path):
    _seed_archive(tmp_path)

    res = client.post(BASE, json={"concepts": []})
    assert res.status_code == 400

    res = client.post(BASE, json={"concepts": ["Functions", "Classes"]})
    assert res.status_code == 404
    assert res.json() == {"success": False, "error": "Could not find concepts: Classes"}


def test_delete_seeds_by_category(client, memory_store, tmp_path):
    _seed_archive(tmp_path)
    client.post(BASE, json={"concepts": ["Functions"]})

    res = client.delete(BASE, params={"category": "python", "type": "problem"})
    assert res.json()["data"]["deletedCount"] == 1

    res = client.delete(BASE, params={"category": "Python"})
    assert res.status_code == 200
    assert res.json()["data"] == {"deletedCount": 2, "message": "Deleted 2 items from database"}
    assert memory_store.documents == []


def test_delete_seeds_validation(client):
    assert client.delete(BASE).status_code == 400
    assert client.delete(BASE, params={"category": "python", "type": "essay"}).status_code == 400
