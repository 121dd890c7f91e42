"""
Advisory Composer
=================

Turns a conversation's disease scores into a final advisory.

Decision rules:
- Top disease: highest score; equal scores resolved by disease code
  (alphabetical) so the choice never depends on mapping order.
- Confidence band: score >= 0.8 High, >= 0.6 Moderate, else Low.
- Escalation: score < 0.6 recommends expert consultation. This cutoff is
  independent from the 0.75 "ask another question" threshold.
- Conversation status moves to ESCALATED or COMPLETED. Both are terminal.
"""

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from ..config import ESCALATION_THRESHOLD, HIGH_CONFIDENCE, normalize_language
from ..errors import ConversationClosedError, KnowledgeBaseUnavailableError, NoEvidenceError
from ..knowledge.store import KnowledgeBase
from ..messages import CONFIDENCE_LEVELS, format_recommendation, say
from ..models import (
    ActionStep,
    Advisory,
    Conversation,
    ConversationStatus,
    Disease,
    localized,
    utc_now,
)

logger = logging.getLogger(__name__)

# A step number: digits and a dot at the start or after whitespace, not a decimal like 2.5
STEP_MARKER = re.compile(r"(?:^|(?<=\s))\d+\.(?!\d)")


def split_treatment_steps(treatment: str) -> List[ActionStep]:
    """
    Split numbered treatment text into ordered steps.

    Steps are renumbered from 1 regardless of the numbers in the text.
    """
    fragments = [f.strip() for f in STEP_MARKER.split(treatment or "")]
    return [ActionStep(step=i, action=f) for i, f in enumerate((f for f in fragments if f), start=1)]


def confidence_band(score: float, high: float = HIGH_CONFIDENCE, moderate: float = ESCALATION_THRESHOLD) -> str:
    if score >= high:
        return "high"
    if score >= moderate:
        return "moderate"
    return "low"


class AdvisoryComposer:
    def __init__(
        self,
        knowledge_base: KnowledgeBase,
        escalation_threshold: float = ESCALATION_THRESHOLD,
        high_confidence_threshold: float = HIGH_CONFIDENCE,
    ):
        self.kb = knowledge_base
        self.escalation_threshold = escalation_threshold
        self.high_confidence_threshold = high_confidence_threshold

    def top_disease(self, probabilities: Dict[str, float]) -> Tuple[str, float]:
        """(disease_id, score) of the best-supported disease."""
        def tie_key(disease_id: str) -> str:
            disease = self.kb.get_disease(disease_id)
            return disease.code if disease else disease_id

        best = min(probabilities, key=lambda d: (-probabilities[d], tie_key(d)))
        return best, probabilities[best]

    def compose(self, conversation: Conversation, language: Optional[str] = None) -> Advisory:
        """
        Build the advisory and close the conversation.

        Raises:
            NoEvidenceError: no disease scores yet
            ConversationClosedError: the conversation is already terminal
        """
        if conversation.is_closed:
            raise ConversationClosedError(
                f"Conversation already {conversation.status.value}",
                session_id=conversation.session_id,
                conversation_id=conversation.id,
                operation="compose_advisory",
            )

        if not conversation.current_probabilities:
            raise NoEvidenceError(
                "No diagnosis available yet. Please provide more information about symptoms.",
                session_id=conversation.session_id,
                conversation_id=conversation.id,
                operation="compose_advisory",
            )

        language = normalize_language(language or conversation.language)
        disease_id, score = self.top_disease(conversation.current_probabilities)

        disease = self.kb.get_disease(disease_id)
        if disease is None:
            raise KnowledgeBaseUnavailableError(
                f"Disease information not found for '{disease_id}'",
                session_id=conversation.session_id,
                conversation_id=conversation.id,
                operation="compose_advisory",
            )

        escalated = score < self.escalation_threshold
        band = confidence_band(score, self.high_confidence_threshold, self.escalation_threshold)
        treatment = localized(disease.treatment, language)

        advisory = Advisory(
            conversation_id=conversation.id,
            disease_id=disease.id,
            confidence_score=score,
            confidence_level=say(CONFIDENCE_LEVELS[band], language),
            recommendation_text=format_recommendation(
                disease_name=localized(disease.name, language),
                band=band,
                confidence_score=score,
                description=localized(disease.description, language),
                treatment=treatment,
                prevention=localized(disease.prevention, language),
                escalated=escalated,
                language=language,
            ),
            action_steps=split_treatment_steps(treatment),
            escalated=escalated,
            language=language,
        )

        conversation.status = ConversationStatus.ESCALATED if escalated else ConversationStatus.COMPLETED
        conversation.updated_at = utc_now()

        logger.info(
            f"Advisory for conversation {conversation.id}: {disease.code} "
            f"score={score:.2f} band={band} escalated={escalated}"
        )
        return advisory


def advisory_payload(advisory: Advisory, disease: Optional[Disease]) -> Dict[str, Any]:
    """Advisory plus the localized disease fields shown to the farmer."""
    language = advisory.language
    return {
        "id": advisory.id,
        "conversation_id": advisory.conversation_id,
        "disease_id": advisory.disease_id,
        "disease_name": localized(disease.name, language) if disease else None,
        "description": localized(disease.description, language) if disease else None,
        "treatment": localized(disease.treatment, language) if disease else None,
        "prevention": localized(disease.prevention, language) if disease else None,
        "confidence_score": advisory.confidence_score,
        "confidence_level": advisory.confidence_level,
        "action_steps": [{"step": s.step, "action": s.action} for s in advisory.action_steps],
        "escalated": advisory.escalated,
        "recommendation_text": advisory.recommendation_text,
        "language": language,
    }
