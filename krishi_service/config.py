"""
Engine Configuration
====================

Tunable constants of the diagnostic engine.

The defaults reproduce the hand-tuned values the advisory flow has always
used. Each can be overridden through an environment variable so that the
thresholds can be adjusted per deployment without a code change.

    KRISHI_DAMPENING_FACTOR      weight multiplier per matching symptom (0.5)
    KRISHI_READY_THRESHOLD       below this, ask another question (0.75)
    KRISHI_ESCALATION_THRESHOLD  below this, escalate to an expert (0.6)
    KRISHI_HIGH_CONFIDENCE       "High" confidence band starts here (0.8)
    KRISHI_SYMPTOM_MATCHER       "substring" or "token"
    KRISHI_KNOWLEDGE_DIR         directory holding the knowledge base files
    KRISHI_DEFAULT_LANGUAGE      language used when a request omits one
    REDIS_HOST / REDIS_PORT      conversation store location
"""

import os
from dataclasses import dataclass
from pathlib import Path

# Path to the packaged knowledge base
KNOWLEDGE_DIR = Path(__file__).parent / "knowledge" / "data"

SUPPORTED_LANGUAGES = ("en", "hi")

# ===== SCORING CONSTANTS =====
DAMPENING_FACTOR = 0.5          # One symptom alone cannot saturate confidence
MAX_SCORE = 1.0

# ===== DECISION THRESHOLDS =====
READY_THRESHOLD = 0.75          # Keep asking while top score is below this
ESCALATION_THRESHOLD = 0.6      # Recommend expert consultation below this
HIGH_CONFIDENCE = 0.8           # "High" band; [0.6, 0.8) is "Moderate"


@dataclass(frozen=True)
class EngineSettings:
    """Runtime settings shared by the engines and the HTTP layer."""
    dampening_factor: float = DAMPENING_FACTOR
    ready_threshold: float = READY_THRESHOLD
    escalation_threshold: float = ESCALATION_THRESHOLD
    high_confidence_threshold: float = HIGH_CONFIDENCE
    matcher: str = "substring"
    knowledge_dir: Path = KNOWLEDGE_DIR
    redis_host: str = "localhost"
    redis_port: int = 6379
    default_language: str = "en"

    @classmethod
    def from_env(cls) -> "EngineSettings":
        """Build settings from environment variables, keeping defaults for unset ones."""
        return cls(
            dampening_factor=float(os.getenv("KRISHI_DAMPENING_FACTOR", DAMPENING_FACTOR)),
            ready_threshold=float(os.getenv("KRISHI_READY_THRESHOLD", READY_THRESHOLD)),
            escalation_threshold=float(os.getenv("KRISHI_ESCALATION_THRESHOLD", ESCALATION_THRESHOLD)),
            high_confidence_threshold=float(os.getenv("KRISHI_HIGH_CONFIDENCE", HIGH_CONFIDENCE)),
            matcher=os.getenv("KRISHI_SYMPTOM_MATCHER", "substring"),
            knowledge_dir=Path(os.getenv("KRISHI_KNOWLEDGE_DIR", str(KNOWLEDGE_DIR))),
            redis_host=os.getenv("REDIS_HOST", "localhost"),
            redis_port=int(os.getenv("REDIS_PORT", 6379)),
            default_language=os.getenv("KRISHI_DEFAULT_LANGUAGE", "en"),
        )


def normalize_language(language: str) -> str:
    """Map a requested language to one we have templates for."""
    language = (language or "en").lower().strip()
    return language if language in SUPPORTED_LANGUAGES else "en"
