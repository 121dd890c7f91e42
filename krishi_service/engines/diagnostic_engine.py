"""
Diagnostic Engine
=================

Per-turn orchestration of the crop triage conversation.

    message -> SymptomExtractor -> BeliefAggregator -> QuestionSelector -> response
    advisory request -> AdvisoryComposer -> Advisory + terminal status

Turns for one session are serialized with a per-session lock, kept only
while some turn holds or waits on it. A turn works on a loaded copy of
the conversation and writes it back once at the end, so a failed turn
leaves the stored record as it was.
"""

import logging
import threading
import time
import weakref
from typing import Any, Dict, List, Optional

from ..config import EngineSettings, normalize_language
from ..errors import ConversationClosedError, UnknownSessionError
from ..knowledge.store import KnowledgeBase
from ..messages import ACKNOWLEDGEMENT, GREETING, IDENTIFIED, OPEN_PROMPT, say
from ..models import (
    Advisory,
    ChatMessage,
    ChatRole,
    Conversation,
    DiagnosticQuestion,
    Symptom,
    TurnResult,
)
from ..storage.conversation_store import ConversationStore, create_store, new_conversation
from .advisory_composer import AdvisoryComposer
from .belief_aggregator import BeliefAggregator, top_score
from .question_selector import QuestionSelector
from .symptom_extractor import SymptomExtractor, get_matcher

logger = logging.getLogger(__name__)


class DiagnosticEngine:
    """
    Conversational crop diagnosis.

    Usage:
        engine = DiagnosticEngine.from_settings(EngineSettings.from_env())
        turn = engine.handle_turn("session-1", "orange pustules on wheat leaves", "en")
        advisory = engine.request_advisory(turn.conversation_id)
    """

    def __init__(
        self,
        knowledge_base: KnowledgeBase,
        store: ConversationStore,
        settings: Optional[EngineSettings] = None,
    ):
        self.settings = settings or EngineSettings()
        self.kb = knowledge_base
        self.store = store

        self.extractor = SymptomExtractor(knowledge_base, get_matcher(self.settings.matcher))
        self.aggregator = BeliefAggregator(knowledge_base, self.settings.dampening_factor)
        self.selector = QuestionSelector(knowledge_base, self.settings.ready_threshold)
        self.composer = AdvisoryComposer(
            knowledge_base,
            escalation_threshold=self.settings.escalation_threshold,
            high_confidence_threshold=self.settings.high_confidence_threshold,
        )

        # Entries vanish once no turn holds the lock
        self._locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    @classmethod
    def from_settings(cls, settings: EngineSettings) -> "DiagnosticEngine":
        knowledge_base = KnowledgeBase.load(settings.knowledge_dir)
        return cls(knowledge_base, create_store(settings), settings)

    def _session_lock(self, session_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(session_id, threading.Lock())

    # ===== TURNS =====

    def handle_turn(
        self,
        session_id: str,
        message: str,
        language: Optional[str] = None,
        crop_id: Optional[str] = None,
        growth_stage: Optional[str] = None,
        location: Optional[str] = None,
        create_if_missing: bool = True,
    ) -> TurnResult:
        """
        Process one farmer message.

        Creates the conversation on the first message of a session unless
        `create_if_missing` is False.

        Raises:
            UnknownSessionError: no conversation and creation not permitted
            ConversationClosedError: the conversation already has an advisory
        """
        language = normalize_language(language or self.settings.default_language)

        with self._session_lock(session_id):
            started = time.perf_counter()
            conversation = self.store.load(session_id)
            is_new = conversation is None

            if is_new:
                if not create_if_missing:
                    raise UnknownSessionError(
                        f"No conversation for session '{session_id}'",
                        session_id=session_id,
                        operation="handle_turn",
                    )
                conversation = new_conversation(
                    session_id,
                    language=language,
                    crop_id=crop_id,
                    growth_stage=growth_stage,
                    location=location,
                )
            elif conversation.is_closed:
                raise ConversationClosedError(
                    f"Conversation for session '{session_id}' is {conversation.status.value}; start a new session",
                    session_id=session_id,
                    conversation_id=conversation.id,
                    operation="handle_turn",
                )

            try:
                result = self._run_turn(conversation, message, language, crop_id or conversation.crop_id)
                if is_new:
                    self.store.create(conversation)
                else:
                    self.store.save(conversation)
            except Exception as e:
                logger.error(f"Turn failed for session {session_id} (operation=handle_turn): {e}")
                if not is_new:
                    self._record_query(conversation, message, language, started, success=False, error=str(e))
                raise

            self._record_query(conversation, message, language, started, success=True)
            return result

    def _run_turn(
        self,
        conversation: Conversation,
        message: str,
        language: str,
        crop_id: Optional[str],
    ) -> TurnResult:
        conversation.history.append(ChatMessage(role=ChatRole.USER, content=message))
        first_message = len(conversation.history) == 1

        matches = self.extractor.extract(message, language, crop_id)
        evidence, probabilities = self.aggregator.aggregate(conversation.detected_symptoms, matches)
        conversation.detected_symptoms = evidence
        conversation.current_probabilities = probabilities

        question = None
        if self.selector.should_ask(evidence, probabilities):
            question = self.selector.next_question(evidence, conversation.history, language)

        response_text = self.compose_response(first_message, matches, question, probabilities, language)
        conversation.history.append(ChatMessage(role=ChatRole.ASSISTANT, content=response_text))

        logger.debug(
            f"Session {conversation.session_id}: +{len(matches)} symptoms, "
            f"evidence={len(evidence)}, top={top_score(probabilities):.2f}, "
            f"question={question.code if question else None}"
        )

        return TurnResult(
            conversation_id=conversation.id,
            response_text=response_text,
            detected_symptoms=sorted(evidence),
            probabilities=dict(probabilities),
            next_question=question.to_payload(language) if question else None,
            matched_symptoms=[s.code for s in matches],
            status=conversation.status,
        )

    def compose_response(
        self,
        first_message: bool,
        matches: List[Symptom],
        question: Optional[DiagnosticQuestion],
        probabilities: Dict[str, float],
        language: str,
    ) -> str:
        """Templated reply: greeting, acknowledgement, then a question or a closing line."""
        parts = []

        if first_message:
            parts.append(say(GREETING, language))

        if matches:
            names = ", ".join(s.describe(language) for s in matches)
            parts.append(say(ACKNOWLEDGEMENT, language, symptoms=names))

        if question:
            parts.append(question.ask(language))
        elif probabilities:
            if top_score(probabilities) > self.settings.escalation_threshold:
                parts.append(say(IDENTIFIED, language))
        elif first_message:
            parts.append(say(OPEN_PROMPT, language))

        # Every turn gets a reply
        if not parts:
            parts.append(say(OPEN_PROMPT, language))

        return "\n\n".join(parts)

    def _record_query(
        self,
        conversation: Conversation,
        message: str,
        language: str,
        started: float,
        success: bool,
        error: Optional[str] = None,
    ) -> None:
        self.store.record_query({
            "conversation_id": conversation.id,
            "query_text": message,
            "language": language,
            "response_time_ms": int((time.perf_counter() - started) * 1000),
            "success": success,
            "error_message": error,
        })

    # ===== ADVISORY =====

    def request_advisory(self, conversation_id: str, language: Optional[str] = None) -> Advisory:
        """
        Compose and store the advisory for a conversation.

        Raises:
            UnknownSessionError: no such conversation
            NoEvidenceError: no symptoms recorded yet
            ConversationClosedError: an advisory was already issued
        """
        conversation = self._require_conversation(conversation_id)

        with self._session_lock(conversation.session_id):
            # Reload under the lock in case a turn finished meanwhile
            conversation = self._require_conversation(conversation_id)
            try:
                advisory = self.composer.compose(conversation, language)
                advisory = self.store.create_advisory(advisory)
                self.store.save(conversation)
            except Exception as e:
                logger.error(
                    f"Advisory failed for conversation {conversation_id} "
                    f"(session={conversation.session_id}, operation=request_advisory): {e}"
                )
                raise

        return advisory

    def _require_conversation(self, conversation_id: str) -> Conversation:
        conversation = self.store.load_by_id(conversation_id)
        if conversation is None:
            raise UnknownSessionError(
                f"Conversation '{conversation_id}' not found",
                conversation_id=conversation_id,
                operation="request_advisory",
            )
        return conversation

    # ===== LOOKUPS =====

    def get_conversation(self, session_id: str) -> Optional[Conversation]:
        return self.store.load(session_id)

    def get_advisory(self, conversation_id: str) -> Optional[Advisory]:
        return self.store.get_advisory(conversation_id)

    def summary(self) -> Dict[str, Any]:
        """Knowledge base and store overview for health checks."""
        return {
            "diseases": len(self.kb.diseases),
            "symptoms": len(self.kb.symptoms),
            "questions": len(self.kb.questions),
            "store": self.store.name,
        }
