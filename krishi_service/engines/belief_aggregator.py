"""
Belief Aggregator
=================

Folds newly detected symptoms into the conversation's evidence set and
rescores every candidate disease:

    score(D) = min(1, sum over evidence symptoms S of weight(S, D) * dampening)

Scores are always recomputed over the whole evidence set, never patched
with only the new symptoms, so they depend on the set alone and not on
the order in which symptoms arrived.
"""

import logging
from typing import Dict, Iterable, Set, Tuple

from ..config import DAMPENING_FACTOR, MAX_SCORE
from ..knowledge.store import KnowledgeBase
from ..models import Symptom

logger = logging.getLogger(__name__)


class BeliefAggregator:
    def __init__(self, knowledge_base: KnowledgeBase, dampening_factor: float = DAMPENING_FACTOR):
        self.kb = knowledge_base
        self.dampening_factor = dampening_factor

    def aggregate(
        self,
        detected_symptoms: Iterable[str],
        newly_found: Iterable[Symptom] = (),
    ) -> Tuple[Set[str], Dict[str, float]]:
        """
        Union new symptoms into the evidence set and rescore.

        Args:
            detected_symptoms: symptom codes already in evidence
            newly_found: symptoms matched in the latest message

        Returns:
            (evidence set, {disease_id: score in [0, 1]})
        """
        evidence = set(detected_symptoms)
        evidence.update(s.code for s in newly_found)
        return evidence, self.score(evidence)

    def score(self, evidence: Iterable[str]) -> Dict[str, float]:
        """Disease scores for an evidence set. Empty evidence gives an empty mapping."""
        evidence = set(evidence)
        if not evidence:
            return {}

        # Unknown codes carry no weight rows and are ignored
        symptom_ids = [s.id for s in self.kb.get_symptoms_by_code(sorted(evidence))]

        scores: Dict[str, float] = {}
        for row in self.kb.get_weights(symptom_ids):
            scores[row.disease_id] = scores.get(row.disease_id, 0.0) + row.weight * self.dampening_factor

        probabilities = {d: min(max(s, 0.0), MAX_SCORE) for d, s in scores.items()}
        logger.debug(f"Scored {len(probabilities)} diseases from {len(evidence)} symptoms")
        return probabilities


def top_score(probabilities: Dict[str, float]) -> float:
    return max(probabilities.values()) if probabilities else 0.0
