"""
TruthTable - Transcript Intelligence Pipeline

Turns completed voice-call webhooks into structured business-formation
facts, vector embeddings and per-stage gap reports, and answers follow-up
questions with retrieval-augmented context.
"""

__version__ = "0.1.0"
