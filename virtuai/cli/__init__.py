# =============================================================================
# virtuai/cli/__init__.py — CLI Package
# =============================================================================
#
# Operator tools for running the knowledge core without the HTTP layer:
# segment a local file, seed a tenant/agent/document, ingest a document,
# chat with an agent, and manage a tenant's provider key.
#
# Heavy imports (openai, aiosqlite, PyMuPDF) are deferred inside the
# handlers so ``--help`` and ``segment`` start quickly.
# =============================================================================

"""Command-line tools for the virtuai knowledge core.

- ``python -m virtuai.cli segment`` — preview how a file is fragmented.
- ``python -m virtuai.cli seed`` — register a tenant, agent and document.
- ``python -m virtuai.cli ingest`` — run the ingestion pipeline.
- ``python -m virtuai.cli chat`` — ask an agent a question.
- ``python -m virtuai.cli credential`` — set, show or delete a tenant key.
"""
