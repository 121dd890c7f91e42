"""
Run the Krishi Triage Service
=============================

Start: python -m krishi_service.run_server
Stop:  Ctrl+C

Loads:
- Crop, symptom, disease and question tables from KRISHI_KNOWLEDGE_DIR
- Redis conversation store (falls back to memory if unreachable)
"""

import logging
import os

import uvicorn

from .app import app, get_engine

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)

    print("=" * 60)
    print("🌾 KrishiSahay Crop Triage - Starting Server")
    print("=" * 60)
    summary = get_engine().summary()
    print(f"📊 Knowledge base: {summary['diseases']} diseases, {summary['symptoms']} symptoms")
    print(f"💾 Conversation store: {summary['store']}")
    print("🔗 API Docs: http://localhost:8000/docs")
    print("=" * 60)

    uvicorn.run(
        app,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", 8000)),
        log_level="info"
    )
