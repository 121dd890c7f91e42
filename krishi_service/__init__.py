# Krishi Service Package
"""
KrishiSahay - Crop Triage Service

This package provides the diagnostic reasoning core:
- Symptom extraction from farmer messages (English / Hindi)
- Evidence accumulation and disease scoring across turns
- Adaptive follow-up question selection
- Advisory composition with expert escalation

Advisories are informational; low-confidence cases are escalated.
"""

__version__ = "1.0.0"
