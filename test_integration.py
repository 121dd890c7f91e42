"""
Integration Test Suite for KrishiSahay Crop Triage
==================================================

This suite tests the service end-to-end:
1. Knowledge base loading and validation
2. Settings from the environment
3. Conversation stores (memory, Redis, fallback)
4. API endpoints

Run with: pytest test_integration.py
"""

import json
import shutil

import pytest
import redis
from fastapi.testclient import TestClient

from krishi_service.app import app, get_engine
from krishi_service.config import KNOWLEDGE_DIR, EngineSettings
from krishi_service.engines.diagnostic_engine import DiagnosticEngine
from krishi_service.errors import KnowledgeBaseUnavailableError, KrishiServiceError
from krishi_service.knowledge.store import KnowledgeBase
from krishi_service.messages import GREETING, NO_EVIDENCE
from krishi_service.models import ActionStep, Advisory, ChatMessage, ChatRole
from krishi_service.storage import conversation_store
from krishi_service.storage.conversation_store import (
    ConversationExistsError,
    InMemoryConversationStore,
    RedisConversationStore,
    create_store,
    new_conversation,
)


class FakeRedis:
    """Just the commands the conversation store uses."""

    def __init__(self, **kwargs):
        self.data = {}
        self.lists = {}

    def ping(self):
        return True

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value, nx=False):
        if nx and key in self.data:
            return None
        self.data[key] = value
        return True

    def rpush(self, key, value):
        self.lists.setdefault(key, []).append(value)
        return len(self.lists[key])

    def lrange(self, key, start, end):
        items = self.lists.get(key, [])
        return items[start:] if end == -1 else items[start:end + 1]


class UnreachableRedis(FakeRedis):
    def ping(self):
        raise redis.exceptions.ConnectionError("Connection refused")


@pytest.fixture(scope="module")
def kb():
    return KnowledgeBase.load(KNOWLEDGE_DIR)


@pytest.fixture
def knowledge_copy(tmp_path):
    target = tmp_path / "knowledge"
    shutil.copytree(KNOWLEDGE_DIR, target)
    return target


# ===== 1. KNOWLEDGE BASE =====

def test_knowledge_base_loads(kb):
    print(f"\n📂 Knowledge base: {len(kb.diseases)} diseases, {len(kb.symptoms)} symptoms")
    assert len(kb.crops) == 3
    assert len(kb.symptoms) == 13
    assert len(kb.diseases) == 8
    assert len(kb.weights) == 20

    rust = kb.get_disease("dis-001")
    assert rust.code == "wheat_leaf_rust"
    assert rust.crop_id == "crop-wheat"
    assert "hi" in rust.treatment

    assert [d.id for d in kb.get_crop_diseases("crop-rice")] == ["dis-003", "dis-004", "dis-005"]
    assert kb.get_crop_diseases("crop-unknown") == []
    assert [d.code for d in kb.get_diseases(["dis-002", "dis-999"])] == ["wheat_powdery_mildew"]
    assert kb.weights_by_symptom["sym-001"][0].is_primary_indicator


def test_question_bank_is_priority_ordered(kb):
    priorities = [q.priority for q in kb.get_questions()]
    assert priorities == sorted(priorities, reverse=True)
    assert kb.get_questions()[0].code == "q_pustule_rub"


def test_weight_out_of_range(knowledge_copy):
    with open(knowledge_copy / "symptom_disease_mapping.csv", "a", encoding="utf-8") as f:
        f.write("sym-009,dis-008,1.5,false\n")
    with pytest.raises(KnowledgeBaseUnavailableError):
        KnowledgeBase.load(knowledge_copy)


def test_weight_for_unknown_symptom(knowledge_copy):
    with open(knowledge_copy / "symptom_disease_mapping.csv", "a", encoding="utf-8") as f:
        f.write("sym-999,dis-001,0.5,false\n")
    with pytest.raises(KnowledgeBaseUnavailableError):
        KnowledgeBase.load(knowledge_copy)


def test_duplicate_weight_row(knowledge_copy):
    with open(knowledge_copy / "symptom_disease_mapping.csv", "a", encoding="utf-8") as f:
        f.write("sym-001,dis-001,0.5,true\n")
    with pytest.raises(KnowledgeBaseUnavailableError):
        KnowledgeBase.load(knowledge_copy)


def test_missing_or_corrupt_files(knowledge_copy):
    (knowledge_copy / "symptoms.json").write_text("{not json", encoding="utf-8")
    with pytest.raises(KnowledgeBaseUnavailableError):
        KnowledgeBase.load(knowledge_copy)

    (knowledge_copy / "diseases.json").unlink()
    with pytest.raises(KnowledgeBaseUnavailableError):
        KnowledgeBase.load(knowledge_copy)



def test_question_without_english_text(knowledge_copy):
    path = knowledge_copy / "diagnostic_questions.json"
    questions = json.loads(path.read_text(encoding="utf-8"))
    questions[0]["question_en"] = ""
    path.write_text(json.dumps(questions, ensure_ascii=False), encoding="utf-8")

    with pytest.raises(KnowledgeBaseUnavailableError):
        KnowledgeBase.load(knowledge_copy)


def test_blank_translation_falls_back_to_english(knowledge_copy):
    path = knowledge_copy / "diagnostic_questions.json"
    questions = json.loads(path.read_text(encoding="utf-8"))
    questions[0]["question_hi"] = "   "
    path.write_text(json.dumps(questions, ensure_ascii=False), encoding="utf-8")

    question = KnowledgeBase.load(knowledge_copy).get_questions()[0]
    assert "hi" not in question.text
    assert question.ask("hi") == questions[0]["question_en"]

# ===== 2. SETTINGS =====

def test_settings_defaults():
    settings = EngineSettings()
    assert settings.dampening_factor == 0.5
    assert settings.ready_threshold == 0.75
    assert settings.escalation_threshold == 0.6
    assert settings.high_confidence_threshold == 0.8
    assert settings.matcher == "substring"


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("KRISHI_READY_THRESHOLD", "0.9")
    monkeypatch.setenv("KRISHI_SYMPTOM_MATCHER", "token")
    monkeypatch.setenv("REDIS_PORT", "6380")

    settings = EngineSettings.from_env()
    assert settings.ready_threshold == 0.9
    assert settings.matcher == "token"
    assert settings.redis_port == 6380
    assert settings.escalation_threshold == 0.6


# ===== 3. CONVERSATION STORES =====

@pytest.mark.parametrize("store_factory", [InMemoryConversationStore, lambda: RedisConversationStore(FakeRedis())])
def test_store_roundtrip(store_factory):
    store = store_factory()
    conversation = new_conversation("s-1", language="hi", crop_id="crop-rice")
    conversation.history.append(ChatMessage(role=ChatRole.USER, content="पत्ते पीले"))
    conversation.detected_symptoms.add("yellow_margins")
    conversation.current_probabilities["dis-004"] = 0.35
    store.create(conversation)

    with pytest.raises(ConversationExistsError) as excinfo:
        store.create(new_conversation("s-1"))
    assert isinstance(excinfo.value, KrishiServiceError)
    assert excinfo.value.session_id == "s-1"
    assert excinfo.value.operation == "create_conversation"
    assert store.load("s-1").id == conversation.id

    loaded = store.load("s-1")
    assert loaded.id == conversation.id
    assert loaded.language == "hi"
    assert loaded.detected_symptoms == {"yellow_margins"}
    assert loaded.history[0].content == "पत्ते पीले"
    assert store.load_by_id(conversation.id).session_id == "s-1"
    assert store.load("s-2") is None

    # Edits to a loaded copy stay local until saved
    loaded.detected_symptoms.add("ooze_droplets")
    assert store.load("s-1").detected_symptoms == {"yellow_margins"}
    store.save(loaded)
    assert store.load("s-1").detected_symptoms == {"yellow_margins", "ooze_droplets"}

    advisory = store.create_advisory(Advisory(
        conversation_id=conversation.id,
        disease_id="dis-004",
        confidence_score=0.35,
        confidence_level="Low",
        recommendation_text="...",
        action_steps=[ActionStep(1, "Stop nitrogen application")],
        escalated=True,
        language="hi",
    ))
    assert advisory.id
    stored = store.get_advisory(conversation.id)
    assert stored.id == advisory.id
    assert stored.action_steps == [ActionStep(1, "Stop nitrogen application")]

    store.record_query({"conversation_id": conversation.id, "query_text": "a", "success": True})
    store.record_query({"conversation_id": conversation.id, "query_text": "b", "success": False})
    assert [q["query_text"] for q in store.get_queries(conversation.id)] == ["a", "b"]


def test_create_store_uses_redis(monkeypatch):
    monkeypatch.setattr(conversation_store.redis, "Redis", FakeRedis)
    assert isinstance(create_store(EngineSettings()), RedisConversationStore)


def test_create_store_falls_back_to_memory(monkeypatch):
    monkeypatch.setattr(conversation_store.redis, "Redis", UnreachableRedis)
    store = create_store(EngineSettings())
    assert isinstance(store, InMemoryConversationStore)
    assert store.name == "memory"


def test_engine_over_redis_store(kb):
    engine = DiagnosticEngine(kb, RedisConversationStore(FakeRedis()))
    turn = engine.handle_turn("r-1", "orange pustules and rust coloured streaks", "en")
    advisory = engine.request_advisory(turn.conversation_id)

    assert advisory.disease_id == "dis-001"
    assert engine.get_conversation("r-1").status.value == "completed"
    assert engine.get_advisory(turn.conversation_id).confidence_level == "High"


# ===== 4. API ENDPOINTS =====

@pytest.fixture
def client(kb):
    engine = DiagnosticEngine(kb, InMemoryConversationStore())
    app.dependency_overrides[get_engine] = lambda: engine
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_api_chat_and_advisory(client):
    print("\n🌐 Testing API flow...")
    response = client.post("/chat", json={
        "session_id": "api-1",
        "message": "Orange pustules on wheat",
        "crop_id": "crop-wheat",
    })
    assert response.status_code == 200
    body = response.json()
    assert body["detected_symptoms"] == ["orange_pustules"]
    assert body["status"] == "active"
    assert body["next_question"]["code"] == "q_pustule_rub"
    conversation_id = body["conversation_id"]

    response = client.post("/chat", json={"session_id": "api-1", "message": "rust coloured streaks too"})
    assert response.json()["probabilities"]["dis-001"] == pytest.approx(0.85)

    response = client.post("/advisory", json={"conversation_id": conversation_id})
    assert response.status_code == 200
    advisory = response.json()
    assert advisory["disease_name"] == "Wheat Rust"
    assert advisory["confidence_level"] == "High"
    assert advisory["escalated"] is False
    assert advisory["action_steps"][0]["step"] == 1

    response = client.post("/chat", json={"session_id": "api-1", "message": "hello?"})
    assert response.status_code == 409

    state = client.get("/conversation/api-1").json()
    assert state["status"] == "completed"
    assert state["detected_symptoms"] == ["orange_pustules", "rust_spots"]
    assert state["advisory"]["id"] == advisory["id"]


def test_api_advisory_errors(client):
    conversation_id = client.post("/chat", json={"session_id": "api-2", "message": "hello"}).json()["conversation_id"]

    response = client.post("/advisory", json={"conversation_id": conversation_id})
    assert response.status_code == 400
    assert response.json()["detail"] == NO_EVIDENCE["en"]

    assert client.post("/advisory", json={"conversation_id": "missing"}).status_code == 404
    assert client.get("/conversation/missing").status_code == 404


def test_api_extract_symptoms(client):
    body = client.post("/extract_symptoms", json={"text": "white powdery coating"}).json()
    assert body["symptoms"] == ["orange_pustules", "white_powder"]
    assert body["descriptions"]["white_powder"] == "white powdery coating"

    body = client.post("/extract_symptoms", json={"text": "white powdery coating", "crop_id": "crop-tomato"}).json()
    assert body["symptoms"] == []


def test_api_crops_and_health(client):
    crops = client.get("/crops", params={"language": "hi"}).json()
    assert [c["id"] for c in crops] == ["crop-wheat", "crop-rice", "crop-tomato"]
    assert crops[0]["name"] == "गेहूं"
    assert crops[0]["growth_stages"][0] == {"code": "tillering", "name": "कल्ले निकलना"}

    health = client.get("/health").json()
    assert health["status"] == "ok"
    assert health["diseases"] == 8
    assert health["store"] == "memory"


def test_api_create_race_is_conflict(kb, monkeypatch):
    store = InMemoryConversationStore()
    store.create(new_conversation("race-1"))
    engine = DiagnosticEngine(kb, store)
    # The other worker's record is not visible when this turn loads
    monkeypatch.setattr(store, "load", lambda session_id: None)
    app.dependency_overrides[get_engine] = lambda: engine
    try:
        response = TestClient(app).post("/chat", json={"session_id": "race-1", "message": "orange pustules"})
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 409
    assert "race-1" in response.json()["detail"]


def test_api_uses_configured_default_language(kb):
    engine = DiagnosticEngine(kb, InMemoryConversationStore(), EngineSettings(default_language="hi"))
    app.dependency_overrides[get_engine] = lambda: engine
    try:
        client = TestClient(app)
        hindi = client.post("/chat", json={"session_id": "lang-1", "message": "नारंगी फफोले"}).json()
        english = client.post("/chat", json={"session_id": "lang-2", "message": "hello", "language": "en"}).json()
        extracted = client.post("/extract_symptoms", json={"text": "नारंगी फफोले"}).json()
    finally:
        app.dependency_overrides.clear()

    assert hindi["response"].startswith(GREETING["hi"])
    assert engine.get_conversation("lang-1").language == "hi"
    assert english["response"].startswith(GREETING["en"])
    assert "orange_pustules" in extracted["symptoms"]
