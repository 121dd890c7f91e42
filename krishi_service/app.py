"""
Krishi Triage API - FastAPI Application

Conversational crop disease triage microservice.

Endpoints:
- POST /chat - Process one farmer message in a session
- POST /advisory - Compose the final advisory for a conversation
- GET /conversation/{session_id} - Get conversation state
- POST /extract_symptoms - Match symptoms in text without side effects
- GET /crops - Crop catalog
- GET /health - Service status

This service gives informational advisories only; low-confidence cases
are escalated to agricultural experts.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from .config import EngineSettings, normalize_language
from .engines.advisory_composer import advisory_payload
from .engines.diagnostic_engine import DiagnosticEngine
from .errors import (
    ConversationClosedError,
    ConversationExistsError,
    KnowledgeBaseUnavailableError,
    NoEvidenceError,
    UnknownSessionError,
)
from .messages import NO_EVIDENCE, TRY_AGAIN, say
from .models import localized

logger = logging.getLogger(__name__)

app = FastAPI(
    title="KrishiSahay Triage",
    description="Conversational crop disease triage microservice",
    version="1.0.0"
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

_engine: Optional[DiagnosticEngine] = None


def get_engine() -> DiagnosticEngine:
    """Engine singleton, built from the environment on first use."""
    global _engine
    if _engine is None:
        _engine = DiagnosticEngine.from_settings(EngineSettings.from_env())
    return _engine


# Request/Response models
class ChatRequest(BaseModel):
    session_id: str
    message: str
    language: Optional[str] = None
    crop_id: Optional[str] = None
    growth_stage: Optional[str] = None
    location: Optional[str] = None

class ChatResponse(BaseModel):
    response: str
    detected_symptoms: List[str]
    probabilities: Dict[str, float]
    next_question: Optional[Dict[str, Any]] = None
    conversation_id: str
    status: str

class AdvisoryRequest(BaseModel):
    conversation_id: str
    language: Optional[str] = None

class ActionStepModel(BaseModel):
    step: int
    action: str

class AdvisoryResponse(BaseModel):
    id: Optional[str]
    conversation_id: str
    disease_id: str
    disease_name: Optional[str]
    description: Optional[str]
    treatment: Optional[str]
    prevention: Optional[str]
    confidence_score: float
    confidence_level: str
    action_steps: List[ActionStepModel]
    escalated: bool
    recommendation_text: str
    language: str

class ExtractRequest(BaseModel):
    text: str
    language: Optional[str] = None
    crop_id: Optional[str] = None


def _error_status(error: Exception) -> int:
    if isinstance(error, UnknownSessionError):
        return 404
    if isinstance(error, (ConversationClosedError, ConversationExistsError)):
        return 409
    if isinstance(error, KnowledgeBaseUnavailableError):
        return 503
    return 500


@app.post("/chat", response_model=ChatResponse)
async def chat(request: ChatRequest, engine: DiagnosticEngine = Depends(get_engine)):
    """
    Handle one farmer message and return the assistant's reply.
    """
    language = normalize_language(request.language or engine.settings.default_language)
    try:
        turn = engine.handle_turn(
            session_id=request.session_id,
            message=request.message,
            language=language,
            crop_id=request.crop_id,
            growth_stage=request.growth_stage,
            location=request.location,
        )
    except (UnknownSessionError, ConversationClosedError, ConversationExistsError, KnowledgeBaseUnavailableError) as e:
        raise HTTPException(status_code=_error_status(e), detail=str(e))
    except Exception as e:
        logger.exception(f"Error in chat for session {request.session_id}: {e}")
        raise HTTPException(status_code=500, detail=say(TRY_AGAIN, language))

    return ChatResponse(
        response=turn.response_text,
        detected_symptoms=turn.detected_symptoms,
        probabilities=turn.probabilities,
        next_question=turn.next_question,
        conversation_id=turn.conversation_id,
        status=turn.status.value,
    )


@app.post("/advisory", response_model=AdvisoryResponse)
async def advisory(request: AdvisoryRequest, engine: DiagnosticEngine = Depends(get_engine)):
    """
    Compose the final advisory once enough symptoms are known.
    """
    language = normalize_language(request.language) if request.language else None
    try:
        result = engine.request_advisory(request.conversation_id, language)
    except NoEvidenceError:
        raise HTTPException(status_code=400, detail=say(NO_EVIDENCE, language or "en"))
    except (UnknownSessionError, ConversationClosedError, KnowledgeBaseUnavailableError) as e:
        raise HTTPException(status_code=_error_status(e), detail=str(e))
    except Exception as e:
        logger.exception(f"Error generating advisory for {request.conversation_id}: {e}")
        raise HTTPException(status_code=500, detail=say(TRY_AGAIN, language or "en"))

    return advisory_payload(result, engine.kb.get_disease(result.disease_id))


@app.get("/conversation/{session_id}")
async def get_conversation(session_id: str, engine: DiagnosticEngine = Depends(get_engine)):
    """
    Get current conversation state.
    """
    conversation = engine.get_conversation(session_id)
    if not conversation:
        raise HTTPException(status_code=404, detail="Session not found")

    state = conversation.to_dict()
    stored = engine.get_advisory(conversation.id)
    state["advisory"] = advisory_payload(stored, engine.kb.get_disease(stored.disease_id)) if stored else None
    return state


@app.post("/extract_symptoms")
async def extract_symptoms(request: ExtractRequest, engine: DiagnosticEngine = Depends(get_engine)):
    """
    Extract symptoms from free text input.
    """
    language = normalize_language(request.language or engine.settings.default_language)
    symptoms = engine.extractor.extract(request.text, language, request.crop_id)
    return {
        "symptoms": [s.code for s in symptoms],
        "descriptions": {s.code: s.describe(language) for s in symptoms},
        "original_text": request.text,
    }


@app.get("/crops")
async def list_crops(language: str = "en", engine: DiagnosticEngine = Depends(get_engine)):
    language = normalize_language(language)
    return [
        {
            "id": crop.id,
            "name": localized(crop.name, language),
            "growth_stages": [
                {"code": stage.get("code"), "name": stage.get(language) or stage.get("en")}
                for stage in crop.growth_stages
            ],
        }
        for crop in engine.kb.get_crops()
    ]


@app.get("/health")
async def health(engine: DiagnosticEngine = Depends(get_engine)):
    return {"status": "ok", **engine.summary()}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
