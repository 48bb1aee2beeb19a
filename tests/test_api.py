import pytest
from fastapi.testclient import TestClient

from api.main import app, get_question_service, get_result_service, get_session_service
from schemas.quiz import Question, ScoredResult
from services.session_service import SessionService

from conftest import FakeSink, make_question


class FakeQuestionService:
    def __init__(self, questions):
        self.questions = list(questions)

    async def fetch_all(self):
        return list(self.questions)

    async def fetch_by_category(self, category):
        return [q for q in self.questions if q.category == category]

    async def list_categories(self):
        from services.question_service import category_display_name
        from schemas.quiz import CategoryInfo
        counts = {}
        for q in self.questions:
            counts[q.category] = counts.get(q.category, 0) + 1
        return [CategoryInfo(id=c, name=category_display_name(c), count=n) for c, n in sorted(counts.items())]

    async def get_question(self, question_id):
        return next((q for q in self.questions if q.id == question_id), None)

    async def bulk_create(self, drafts):
        created = []
        for draft in drafts:
            question = Question(id=len(self.questions) + 1, **draft.model_dump())
            self.questions.append(question)
            created.append(question)
        return created


class FakeResultService:
    def __init__(self, store):
        self.store = store

    async def create_result(self, result: ScoredResult):
        stored = result.model_copy(update={"id": len(self.store) + 1})
        self.store.append(stored)
        return stored

    async def list_results(self):
        return list(self.store)

    async def get_result(self, result_id):
        return next((r for r in self.store if r.id == result_id), None)


@pytest.fixture
def sink():
    return FakeSink()


@pytest.fixture
def client(sink):
    questions = FakeQuestionService([
        make_question(1, category="computer_science", correct="A"),
        make_question(2, category="computer_science", correct="B"),
        make_question(3, category="history", correct="C"),
    ])
    results = FakeResultService(sink.saved)
    sessions = SessionService(sink, auto_tick=False)

    app.dependency_overrides[get_question_service] = lambda: questions
    app.dependency_overrides[get_result_service] = lambda: results
    app.dependency_overrides[get_session_service] = lambda: sessions
    yield TestClient(app)
    app.dependency_overrides.clear()


def start(client, **body):
    response = client.post("/api/sessions", json=body)
    assert response.status_code == 201
    return response.json()


def test_categories(client):
    response = client.get("/api/categories")
    assert response.status_code == 200
    assert response.json()[0] == {"id": "computer_science", "name": "Computer science", "count": 2}


def test_questions_use_camel_case(client):
    data = client.get("/api/questions/1").json()
    assert data["questionText"] == "Question number 1?"
    assert data["correctAnswer"] == "A"

    assert len(client.get("/api/questions/category/history").json()) == 1


def test_question_not_found_and_bad_id(client):
    assert client.get("/api/questions/99").status_code == 404
    assert client.get("/api/questions/abc").status_code == 400


def test_session_hides_correct_answers(client):
    snapshot = start(client)

    assert snapshot["state"] == "active"
    assert snapshot["totalQuestions"] == 3
    assert snapshot["sessionTimer"] == "15:00"
    assert snapshot["topic"] == "All Categories"
    assert "correctAnswer" not in snapshot["currentQuestion"]


def test_start_with_unknown_category(client):
    response = client.post("/api/sessions", json={"category": "music"})
    assert response.status_code == 404
    assert "music" in response.json()["detail"]


def test_answer_navigate_and_submit(client):
    snapshot = start(client, category="computer_science")
    session_id = snapshot["sessionId"]
    first = snapshot["currentQuestion"]["id"]

    response = client.post(f"/api/sessions/{session_id}/answers", json={"questionId": first, "answer": "A", "timeSpent": 4})
    assert response.status_code == 200
    assert response.json()["answeredCount"] == 1

    response = client.post(f"/api/sessions/{session_id}/submit")
    assert response.status_code == 409
    assert "1 unanswered" in response.json()["detail"]

    response = client.post(f"/api/sessions/{session_id}/navigate", json={"action": "next"})
    assert response.json()["currentIndex"] == 1

    response = client.post(f"/api/sessions/{session_id}/submit", params={"force": "true"})
    assert response.status_code == 200
    data = response.json()
    assert data["state"] == "submitted"
    assert data["result"]["quizTopic"] == "computer_science"
    assert data["result"]["totalQuestions"] == 2
    assert data["result"]["questionResults"][1]["userAnswer"] == ""

    # Submitting again returns the same stored result
    again = client.post(f"/api/sessions/{session_id}/submit").json()
    assert again["result"]["id"] == data["result"]["id"]


def test_skip_moves_to_next_question(client):
    snapshot = start(client)
    session_id = snapshot["sessionId"]
    first = snapshot["currentQuestion"]["id"]

    data = client.post(f"/api/sessions/{session_id}/skip", json={"questionId": first}).json()

    assert data["currentIndex"] == 1
    assert data["questions"][0]["status"] == "skipped"


def test_skip_remaining_then_submit(client):
    session_id = start(client)["sessionId"]

    data = client.post(f"/api/sessions/{session_id}/skip-remaining").json()
    assert data["unansweredCount"] == 0

    data = client.post(f"/api/sessions/{session_id}/submit").json()
    assert data["result"]["score"] == 0
    assert all(item["skipped"] for item in data["result"]["questionResults"])


def test_answer_for_foreign_question(client):
    session_id = start(client, category="history")["sessionId"]
    response = client.post(f"/api/sessions/{session_id}/answers", json={"questionId": 1, "answer": "A"})
    assert response.status_code == 400


def test_answer_after_submit_conflicts(client):
    snapshot = start(client)
    session_id = snapshot["sessionId"]
    client.post(f"/api/sessions/{session_id}/submit", params={"force": "true"})

    response = client.post(
        f"/api/sessions/{session_id}/answers",
        json={"questionId": snapshot["currentQuestion"]["id"], "answer": "A"},
    )
    assert response.status_code == 409


def test_retake(client, sink):
    session_id = start(client)["sessionId"]
    assert client.post(f"/api/sessions/{session_id}/retake").status_code == 409

    client.post(f"/api/sessions/{session_id}/submit", params={"force": "true"})
    data = client.post(f"/api/sessions/{session_id}/retake").json()

    assert data["state"] == "active"
    assert data["answeredCount"] == 0
    assert data["result"] is None
    assert len(sink.saved) == 1


def test_submit_save_failure(client, sink):
    session_id = start(client)["sessionId"]
    sink.failures = 1

    response = client.post(f"/api/sessions/{session_id}/submit", params={"force": "true"})
    assert response.status_code == 503
    assert client.get(f"/api/sessions/{session_id}").json()["state"] == "submitting"

    response = client.post(f"/api/sessions/{session_id}/submit")
    assert response.status_code == 200
    assert response.json()["state"] == "submitted"


def test_navigate_after_submit_conflicts(client):
    session_id = start(client)["sessionId"]
    client.post(f"/api/sessions/{session_id}/submit", params={"force": "true"})

    response = client.post(f"/api/sessions/{session_id}/navigate", json={"action": "next"})
    assert response.status_code == 409
    assert client.get(f"/api/sessions/{session_id}").json()["currentIndex"] == 0


def test_quit_session(client):
    session_id = start(client)["sessionId"]
    assert client.delete(f"/api/sessions/{session_id}").json() == {"status": "success"}
    assert client.get(f"/api/sessions/{session_id}").status_code == 404
    assert client.delete(f"/api/sessions/{session_id}").status_code == 404


def test_import_question_bank(client):
    payload = {"questions": [{
        "id": "x1",
        "question": "What does CPU stand for?",
        "options": ["Central Processing Unit", "Computer Personal Unit"],
        "correctAnswer": "Central Processing Unit",
        "category": "computer_science",
        "difficulty": "easy",
    }]}
    response = client.post("/api/questions/import", json=payload)
    assert response.status_code == 201
    assert response.json()["count"] == 1

    response = client.post("/api/questions/import", json={"questions": [{"id": "x2"}]})
    assert response.status_code == 400


def test_import_text(client):
    body = {"text": "?2+2?\n+4\n=5\n?Broken\n=1", "category": "math", "difficulty": "easy"}
    response = client.post("/api/questions/import/text", json=body)

    assert response.status_code == 201
    data = response.json()
    assert data["count"] == 1
    assert len(data["errors"]) == 1


def test_quiz_results_and_analytics(client):
    session_id = start(client)["sessionId"]
    client.post(f"/api/sessions/{session_id}/skip-remaining")
    result_id = client.post(f"/api/sessions/{session_id}/submit").json()["result"]["id"]

    assert len(client.get("/api/quiz-results").json()) == 1
    assert client.get(f"/api/quiz-results/{result_id}").json()["id"] == result_id

    analytics = client.get(f"/api/quiz-results/{result_id}/analytics").json()
    assert analytics["performanceLevel"] == "Needs Improvement"
    assert len(analytics["timeline"]) == 3

    assert client.get("/api/quiz-results/999").status_code == 404


def test_create_quiz_result_rejects_inconsistent_score(client):
    payload = {
        "quizTopic": "history",
        "score": 1,
        "totalQuestions": 1,
        "timeSpent": 10,
        "completedAt": "2024-05-01T12:00:00Z",
        "questionResults": [{
            "questionId": 3,
            "questionText": "Question number 3?",
            "userAnswer": "A",
            "correctAnswer": "C",
            "isCorrect": False,
            "timeSpent": 10,
        }],
    }
    assert client.post("/api/quiz-results", json=payload).status_code == 400

    payload["score"] = 0
    response = client.post("/api/quiz-results", json=payload)
    assert response.status_code == 201
    assert response.json()["id"] == 1
