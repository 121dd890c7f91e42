"""
Knowledge Base Store
====================

Read-only lookup service over the agricultural reference tables:

- crops.json                    crop catalog with growth stages
- symptoms.json                 symptom catalog (English + Hindi descriptions)
- diseases.json                 diseases with treatment / prevention text
- diagnostic_questions.json     follow-up question bank
- symptom_disease_mapping.csv   weighted symptom -> disease links

Tables are small (tens to low hundreds of rows), so everything is read
once and indexed in memory. Any failure to read or parse the files is
raised as KnowledgeBaseUnavailableError.
"""

import csv
import json
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

from ..errors import KnowledgeBaseUnavailableError
from ..models import (
    AnswerType,
    Crop,
    DiagnosticQuestion,
    Disease,
    Severity,
    Symptom,
    SymptomDiseaseWeight,
)

logger = logging.getLogger(__name__)

LANGUAGES = ("en", "hi")


def _per_language(row: Dict, prefix: str) -> Dict[str, str]:
    """Collect `<prefix>_en`, `<prefix>_hi` columns into {lang: text}."""
    return {
        lang: row[f"{prefix}_{lang}"]
        for lang in LANGUAGES
        if str(row.get(f"{prefix}_{lang}") or "").strip()
    }


class KnowledgeBase:
    """
    In-memory index over the reference tables.

    Build with `KnowledgeBase.load(directory)` for the file-backed store or
    pass already-parsed records to the constructor.
    """

    def __init__(
        self,
        symptoms: Iterable[Symptom],
        diseases: Iterable[Disease],
        weights: Iterable[SymptomDiseaseWeight],
        questions: Iterable[DiagnosticQuestion],
        crops: Iterable[Crop] = (),
    ):
        self.symptoms: Dict[str, Symptom] = {s.id: s for s in symptoms}
        self.diseases: Dict[str, Disease] = {d.id: d for d in diseases}
        self.crops: Dict[str, Crop] = {c.id: c for c in crops}
        self.symptoms_by_code: Dict[str, Symptom] = {s.code: s for s in self.symptoms.values()}

        # Highest priority first; code breaks ties so the order is stable
        self.questions: List[DiagnosticQuestion] = sorted(
            questions, key=lambda q: (-q.priority, q.code)
        )
        for q in self.questions:
            # Asked-detection matches question text inside earlier replies
            if not q.text.get("en", "").strip():
                raise KnowledgeBaseUnavailableError(
                    f"Question '{q.code}' has no English text", operation="load"
                )

        self.weights: List[SymptomDiseaseWeight] = []
        self.weights_by_symptom: Dict[str, List[SymptomDiseaseWeight]] = {}
        self.weights_by_disease: Dict[str, List[SymptomDiseaseWeight]] = {}
        seen = set()

        for w in weights:
            if w.symptom_id not in self.symptoms:
                raise KnowledgeBaseUnavailableError(
                    f"Weight references unknown symptom '{w.symptom_id}'", operation="load"
                )
            if w.disease_id not in self.diseases:
                raise KnowledgeBaseUnavailableError(
                    f"Weight references unknown disease '{w.disease_id}'", operation="load"
                )
            if not 0.0 <= w.weight <= 1.0:
                raise KnowledgeBaseUnavailableError(
                    f"Weight {w.weight} for ({w.symptom_id}, {w.disease_id}) outside [0, 1]",
                    operation="load",
                )
            pair = (w.symptom_id, w.disease_id)
            if pair in seen:
                raise KnowledgeBaseUnavailableError(
                    f"Duplicate weight row for {pair}", operation="load"
                )
            seen.add(pair)

            self.weights.append(w)
            self.weights_by_symptom.setdefault(w.symptom_id, []).append(w)
            self.weights_by_disease.setdefault(w.disease_id, []).append(w)

        logger.info(
            f"Knowledge base ready: {len(self.diseases)} diseases, {len(self.symptoms)} symptoms, "
            f"{len(self.weights)} weights, {len(self.questions)} questions"
        )

    # ===== READ INTERFACE =====

    def get_symptoms(self, disease_ids: Optional[Iterable[str]] = None) -> List[Symptom]:
        """All symptoms, or only those linked to at least one of `disease_ids`."""
        if disease_ids is None:
            return list(self.symptoms.values())

        linked: Set[str] = set()
        for disease_id in disease_ids:
            for w in self.weights_by_disease.get(disease_id, []):
                linked.add(w.symptom_id)
        return [s for s in self.symptoms.values() if s.id in linked]

    def get_symptoms_by_code(self, codes: Iterable[str]) -> List[Symptom]:
        """Resolve symptom codes; unknown codes are skipped."""
        return [self.symptoms_by_code[c] for c in codes if c in self.symptoms_by_code]

    def get_diseases(self, ids: Optional[Iterable[str]] = None) -> List[Disease]:
        if ids is None:
            return list(self.diseases.values())
        return [self.diseases[i] for i in ids if i in self.diseases]

    def get_disease(self, disease_id: str) -> Optional[Disease]:
        return self.diseases.get(disease_id)

    def get_crop_diseases(self, crop_id: str) -> List[Disease]:
        return [d for d in self.diseases.values() if d.crop_id == crop_id]

    def get_weights(self, symptom_ids: Iterable[str]) -> List[SymptomDiseaseWeight]:
        rows = []
        for symptom_id in symptom_ids:
            rows.extend(self.weights_by_symptom.get(symptom_id, []))
        return rows

    def get_questions(self) -> List[DiagnosticQuestion]:
        """Question bank ordered by priority, highest first."""
        return list(self.questions)

    def get_crops(self) -> List[Crop]:
        return list(self.crops.values())

    # ===== FILE LOADING =====

    @classmethod
    def load(cls, knowledge_dir: Path) -> "KnowledgeBase":
        """Load all tables from a knowledge directory."""
        knowledge_dir = Path(knowledge_dir)
        logger.info(f"Loading knowledge base from: {knowledge_dir}")

        try:
            crops = [cls._parse_crop(r) for r in cls._read_json(knowledge_dir / "crops.json")]
            symptoms = [cls._parse_symptom(r) for r in cls._read_json(knowledge_dir / "symptoms.json")]
            diseases = [cls._parse_disease(r) for r in cls._read_json(knowledge_dir / "diseases.json")]
            questions = [
                cls._parse_question(r)
                for r in cls._read_json(knowledge_dir / "diagnostic_questions.json")
            ]
            weights = cls._read_weights(knowledge_dir / "symptom_disease_mapping.csv")
        except KnowledgeBaseUnavailableError:
            raise
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise KnowledgeBaseUnavailableError(
                f"Knowledge base at {knowledge_dir} could not be read: {e}", operation="load"
            ) from e

        return cls(symptoms, diseases, weights, questions, crops)

    @staticmethod
    def _read_json(path: Path) -> List[Dict]:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, list):
            raise ValueError(f"{path.name} must contain a JSON array")
        return data

    @staticmethod
    def _read_weights(path: Path) -> List[SymptomDiseaseWeight]:
        rows = []
        with open(path, "r", encoding="utf-8") as f:
            reader = csv.DictReader(f)
            for row in reader:
                rows.append(SymptomDiseaseWeight(
                    symptom_id=row["symptom_id"].strip(),
                    disease_id=row["disease_id"].strip(),
                    weight=float(row["probability_weight"]),
                    is_primary_indicator=row.get("is_primary_indicator", "").strip().lower() in ("true", "1", "yes"),
                ))
        return rows

    @staticmethod
    def _parse_crop(row: Dict) -> Crop:
        return Crop(
            id=row["id"],
            name=_per_language(row, "name"),
            growth_stages=row.get("growth_stages", []),
        )

    @staticmethod
    def _parse_symptom(row: Dict) -> Symptom:
        return Symptom(
            id=row["id"],
            code=row["symptom_code"],
            description=_per_language(row, "description"),
            severity=Severity(row.get("severity", "moderate")),
            visual_indicators=row.get("visual_indicators") or {},
        )

    @staticmethod
    def _parse_disease(row: Dict) -> Disease:
        return Disease(
            id=row["id"],
            code=row["disease_code"],
            name=_per_language(row, "name"),
            description=_per_language(row, "description"),
            treatment=_per_language(row, "treatment"),
            prevention=_per_language(row, "prevention"),
            crop_id=row.get("crop_id"),
            severity_level=Severity(row.get("severity_level", "moderate")),
        )

    @staticmethod
    def _parse_question(row: Dict) -> DiagnosticQuestion:
        return DiagnosticQuestion(
            code=row["question_code"],
            text=_per_language(row, "question"),
            trigger_symptoms=frozenset(row.get("trigger_symptoms", [])),
            answer_type=AnswerType(row.get("answer_type", "yes_no")),
            options=row.get("options") or [],
            priority=int(row.get("priority", 0)),
        )
