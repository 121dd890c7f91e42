"""
Question Selector
=================

Greedy follow-up question choice.

Walks the question bank from highest priority down and returns the first
question that (a) is triggered by at least one symptom in evidence and
(b) has not been asked yet in this conversation. "Asked" is derived by
scanning the assistant's previous messages for the question text, so
there is no separate state to fall out of sync with the history.
"""

import logging
from typing import Dict, Iterable, List, Optional

from ..config import READY_THRESHOLD
from ..knowledge.store import KnowledgeBase
from ..models import ChatMessage, ChatRole, DiagnosticQuestion
from .belief_aggregator import top_score

logger = logging.getLogger(__name__)


class QuestionSelector:
    def __init__(self, knowledge_base: KnowledgeBase, ready_threshold: float = READY_THRESHOLD):
        self.kb = knowledge_base
        self.ready_threshold = ready_threshold

    def should_ask(self, detected_symptoms: Iterable[str], probabilities: Dict[str, float]) -> bool:
        """More evidence is useful while something is known but nothing is near-certain."""
        return bool(set(detected_symptoms)) and bool(probabilities) and top_score(probabilities) < self.ready_threshold

    def next_question(
        self,
        detected_symptoms: Iterable[str],
        history: List[ChatMessage],
        language: str,
    ) -> Optional[DiagnosticQuestion]:
        """Highest-priority unasked question triggered by the evidence, or None."""
        evidence = set(detected_symptoms)
        asked = [m.content for m in history if m.role == ChatRole.ASSISTANT]

        for question in self.kb.get_questions():
            if not question.trigger_symptoms & evidence:
                continue

            text = question.ask(language)
            if any(text in message for message in asked):
                continue

            logger.debug(f"Selected question {question.code} (priority {question.priority})")
            return question

        return None
