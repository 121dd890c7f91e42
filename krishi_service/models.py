"""
Domain Models
=============

Reference data (symptoms, diseases, weights, questions, crops) and the
mutable conversation record shared by the diagnostic engines.

Reference data is immutable once loaded. Conversations and advisories
round-trip through plain dicts so they can be stored as JSON.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Set


def utc_now() -> str:
    """ISO-8601 timestamp in UTC."""
    return datetime.now(timezone.utc).isoformat()


def localized(texts: Dict[str, str], language: str, fallback: str = "en") -> str:
    """Pick the text for a language, falling back to English."""
    if language in texts and texts[language]:
        return texts[language]
    return texts.get(fallback, "")


class Severity(str, Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    CRITICAL = "critical"


class AnswerType(str, Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    YES_NO = "yes_no"
    TEXT = "text"


class ConversationStatus(str, Enum):
    """Conversation lifecycle. COMPLETED and ESCALATED are terminal."""
    ACTIVE = "active"
    COMPLETED = "completed"
    ESCALATED = "escalated"


class ChatRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


# ===== REFERENCE DATA =====

@dataclass(frozen=True)
class Crop:
    id: str
    name: Dict[str, str]
    growth_stages: List[Dict[str, str]] = field(default_factory=list)


@dataclass(frozen=True)
class Symptom:
    id: str
    code: str
    description: Dict[str, str]
    severity: Severity = Severity.MODERATE
    visual_indicators: Dict[str, Any] = field(default_factory=dict)

    def describe(self, language: str) -> str:
        return localized(self.description, language)


@dataclass(frozen=True)
class Disease:
    id: str
    code: str
    name: Dict[str, str]
    description: Dict[str, str]
    treatment: Dict[str, str]
    prevention: Dict[str, str] = field(default_factory=dict)
    crop_id: Optional[str] = None
    severity_level: Severity = Severity.MODERATE


@dataclass(frozen=True)
class SymptomDiseaseWeight:
    symptom_id: str
    disease_id: str
    weight: float
    is_primary_indicator: bool = False


@dataclass(frozen=True)
class DiagnosticQuestion:
    code: str
    text: Dict[str, str]
    trigger_symptoms: frozenset
    answer_type: AnswerType = AnswerType.YES_NO
    options: List[Any] = field(default_factory=list)
    priority: int = 0

    def ask(self, language: str) -> str:
        return localized(self.text, language)

    def to_payload(self, language: str) -> Dict[str, Any]:
        """Shape returned to callers as `next_question`."""
        return {
            "question": self.ask(language),
            "code": self.code,
            "answer_type": self.answer_type.value,
            "options": list(self.options),
        }


# ===== CONVERSATION STATE =====

@dataclass
class ChatMessage:
    role: ChatRole
    content: str
    timestamp: str = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role.value, "content": self.content, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatMessage":
        return cls(
            role=ChatRole(data["role"]),
            content=data.get("content", ""),
            timestamp=data.get("timestamp") or utc_now(),
        )


@dataclass
class Conversation:
    """
    One farmer session.

    `detected_symptoms` only ever grows. `current_probabilities` is always
    a full recomputation over `detected_symptoms`.
    """
    id: str
    session_id: str
    language: str = "en"
    crop_id: Optional[str] = None
    growth_stage: Optional[str] = None
    location: Optional[str] = None
    history: List[ChatMessage] = field(default_factory=list)
    detected_symptoms: Set[str] = field(default_factory=set)
    current_probabilities: Dict[str, float] = field(default_factory=dict)
    status: ConversationStatus = ConversationStatus.ACTIVE
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    @property
    def is_closed(self) -> bool:
        return self.status != ConversationStatus.ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "language": self.language,
            "crop_id": self.crop_id,
            "growth_stage": self.growth_stage,
            "location": self.location,
            "history": [m.to_dict() for m in self.history],
            # Sorted so the stored JSON is stable
            "detected_symptoms": sorted(self.detected_symptoms),
            "current_probabilities": dict(self.current_probabilities),
            "status": self.status.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Conversation":
        return cls(
            id=data["id"],
            session_id=data["session_id"],
            language=data.get("language", "en"),
            crop_id=data.get("crop_id"),
            growth_stage=data.get("growth_stage"),
            location=data.get("location"),
            history=[ChatMessage.from_dict(m) for m in data.get("history", [])],
            detected_symptoms=set(data.get("detected_symptoms", [])),
            current_probabilities={k: float(v) for k, v in data.get("current_probabilities", {}).items()},
            status=ConversationStatus(data.get("status", "active")),
            created_at=data.get("created_at") or utc_now(),
            updated_at=data.get("updated_at") or utc_now(),
        )


@dataclass(frozen=True)
class ActionStep:
    step: int
    action: str


@dataclass(frozen=True)
class Advisory:
    conversation_id: str
    disease_id: str
    confidence_score: float
    confidence_level: str
    recommendation_text: str
    action_steps: List[ActionStep]
    escalated: bool
    language: str
    id: Optional[str] = None
    created_at: str = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Advisory":
        return cls(
            id=data.get("id"),
            conversation_id=data["conversation_id"],
            disease_id=data["disease_id"],
            confidence_score=float(data["confidence_score"]),
            confidence_level=data.get("confidence_level", ""),
            recommendation_text=data.get("recommendation_text", ""),
            action_steps=[ActionStep(**s) for s in data.get("action_steps", [])],
            escalated=bool(data.get("escalated", False)),
            language=data.get("language", "en"),
            created_at=data.get("created_at") or utc_now(),
        )


@dataclass
class TurnResult:
    """What a single call to `handle_turn` hands back to the chat layer."""
    conversation_id: str
    response_text: str
    detected_symptoms: List[str]
    probabilities: Dict[str, float]
    next_question: Optional[Dict[str, Any]] = None
    matched_symptoms: List[str] = field(default_factory=list)
    status: ConversationStatus = ConversationStatus.ACTIVE
