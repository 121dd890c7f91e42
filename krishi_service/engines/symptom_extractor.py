"""
Symptom Extractor
=================

Finds catalog symptoms mentioned in a farmer's free-text message.

Each symptom's localized description is broken into cue tokens
(whitespace/comma separated, longer than 3 characters). A symptom is
detected when the message contains one of its cues.

Matching is delegated to a SymptomMatcher so the strategy can change
without touching scoring:
- SubstringMatcher: case-insensitive substring containment (default).
  Over-matches on short or common fragments.
- WholeTokenMatcher: cue must equal a whole token of the message.
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import List, Optional, Set

from ..knowledge.store import KnowledgeBase
from ..models import Symptom

logger = logging.getLogger(__name__)

MIN_CUE_LENGTH = 4
CUE_SPLIT = re.compile(r"[\s,]+")
MESSAGE_SPLIT = re.compile(r"[\s,.;:!?।()\"']+")


def cue_tokens(description: str) -> List[str]:
    """Split a description into lower-cased cue tokens longer than 3 characters."""
    return [w.lower() for w in CUE_SPLIT.split(description or "") if len(w) >= MIN_CUE_LENGTH]


class SymptomMatcher(ABC):
    """Decides whether a message mentions any of a symptom's cues."""

    @abstractmethod
    def matches(self, message: str, cues: List[str]) -> bool:
        """`message` is already lower-cased."""
        pass


class SubstringMatcher(SymptomMatcher):
    def matches(self, message: str, cues: List[str]) -> bool:
        return any(cue in message for cue in cues)


class WholeTokenMatcher(SymptomMatcher):
    def matches(self, message: str, cues: List[str]) -> bool:
        tokens = set(t for t in MESSAGE_SPLIT.split(message) if t)
        return any(cue in tokens for cue in cues)


MATCHERS = {
    "substring": SubstringMatcher,
    "token": WholeTokenMatcher,
}


def get_matcher(name: str) -> SymptomMatcher:
    """Look up a matcher by its configured name."""
    try:
        return MATCHERS[name]()
    except KeyError:
        raise ValueError(f"Unknown symptom matcher '{name}'. Choose from: {', '.join(MATCHERS)}")


class SymptomExtractor:
    """Stateless scan of a message against the (optionally crop-filtered) symptom catalog."""

    def __init__(self, knowledge_base: KnowledgeBase, matcher: Optional[SymptomMatcher] = None):
        self.kb = knowledge_base
        self.matcher = matcher or SubstringMatcher()

    def candidate_symptoms(self, crop_id: Optional[str] = None) -> List[Symptom]:
        """
        Symptoms worth checking for a crop.

        Narrowed to symptoms linked to the crop's diseases; falls back to the
        full catalog when the crop has no diseases or none of them is mapped.
        """
        if crop_id:
            disease_ids = [d.id for d in self.kb.get_crop_diseases(crop_id)]
            if disease_ids:
                relevant = self.kb.get_symptoms(disease_ids)
                if relevant:
                    return relevant
            logger.debug(f"No mapped symptoms for crop {crop_id}, using full catalog")
        return self.kb.get_symptoms()

    def extract(self, message: str, language: str, crop_id: Optional[str] = None) -> List[Symptom]:
        """
        Symptoms whose cues appear in `message`.

        Returns an empty list when nothing matches. Catalog order is kept.
        """
        message_lower = (message or "").lower()
        if not message_lower.strip():
            return []

        found = []
        for symptom in self.candidate_symptoms(crop_id):
            cues = cue_tokens(symptom.describe(language))
            if cues and self.matcher.matches(message_lower, cues):
                found.append(symptom)

        logger.debug(f"Matched symptoms: {[s.code for s in found]}")
        return found

    def extract_codes(self, message: str, language: str, crop_id: Optional[str] = None) -> Set[str]:
        return {s.code for s in self.extract(message, language, crop_id)}
