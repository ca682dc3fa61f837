# =============================================================================
# virtuai/cli/manage.py — Knowledge Core Operator CLI
# =============================================================================
#
# One-shot commands against the same SQLite database and blob storage the
# API server uses.  Each command builds only the components it needs.
#
# Subcommands:
#
#   segment     — Print the fragments a local file would produce
#   seed        — Create a tenant + agent and register a local file as a
#                 document (optionally ingesting it straight away)
#   ingest      — Run the ingestion pipeline for an existing document
#   chat        — Ask an agent one question, printing the reply
#   credential  — set / show / delete a tenant's provider key
#
# Usage examples:
#   python -m virtuai.cli segment --file notes.md --profile paragraph
#   python -m virtuai.cli seed --tenant acme --agent-name "Support" \
#       --file handbook.pdf --ingest
#   python -m virtuai.cli ingest --tenant acme --agent <id> --document <id> \
#       --mode process
#   python -m virtuai.cli chat --agent <id> "How do refunds work?"
#   python -m virtuai.cli credential set --tenant acme --key sk-...
# =============================================================================

"""Operator CLI for the virtuai knowledge core."""

from __future__ import annotations

import argparse
import asyncio
import sys
import uuid
from pathlib import Path
from typing import Any

from virtuai.config.loader import build_settings
from virtuai.config.settings import Settings
from virtuai.utils.logging import configure_logging

_DEFAULT_CONFIG = "config/config.yaml"


async def _open_components(app_settings: Settings) -> dict[str, Any]:
    """Build and initialise the store, blob store, provider and services.

    The caller owns the returned ``http_client`` and must close it.
    """
    import httpx

    from virtuai.providers.blob.http_blob_store import HTTPBlobStore
    from virtuai.providers.blob.local_blob_store import LocalBlobStore
    from virtuai.providers.extraction.text_extractor import DocumentTextExtractor
    from virtuai.providers.llm.openai_provider_client import OpenAIProviderClient
    from virtuai.providers.store.sqlite_document_store import SQLiteDocumentStore
    from virtuai.services.chat_service import ChatService
    from virtuai.services.ingestion_service import IngestionService
    from virtuai.services.knowledge_core import KnowledgeCore
    from virtuai.services.segmenter import Segmenter

    http_client = httpx.AsyncClient(timeout=app_settings.download_timeout_seconds)
    store = SQLiteDocumentStore(db_path=app_settings.database_path)
    await store.initialize()

    if app_settings.blob_base_url:
        blob_store = HTTPBlobStore(
            http_client=http_client,
            base_url=app_settings.blob_base_url,
            timeout=app_settings.download_timeout_seconds,
        )
    else:
        blob_store = LocalBlobStore(root=app_settings.blob_root)

    provider = OpenAIProviderClient(settings=app_settings, http_client=http_client)
    ingestion = IngestionService(
        store=store,
        blob_store=blob_store,
        extractor=DocumentTextExtractor(),
        provider=provider,
        segmenter=Segmenter.from_settings(app_settings),
        settings=app_settings,
    )
    chat = ChatService(store=store, provider=provider, settings=app_settings)

    return {
        "http_client": http_client,
        "document_store": store,
        "blob_store": blob_store,
        "knowledge_core": KnowledgeCore(ingestion=ingestion, chat=chat),
    }


# ---------------------------------------------------------------------------
# Subcommand handlers
# ---------------------------------------------------------------------------


def _handle_segment(args: argparse.Namespace, app_settings: Settings) -> int:
    """Extract a local file and print its fragments under one profile."""
    from virtuai.providers.extraction.text_extractor import DocumentTextExtractor
    from virtuai.services.segmenter import Segmenter
    from virtuai.utils.errors import EmptyContentError

    path = Path(args.file)
    if not path.is_file():
        print(f"Error: file not found: {path}", file=sys.stderr)
        return 1

    try:
        extracted = DocumentTextExtractor().extract(path.read_bytes())
    except EmptyContentError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1

    segmenter = Segmenter.from_settings(app_settings)
    try:
        fragments = segmenter.segment(extracted.text, args.profile)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    limit = segmenter.profile(args.profile).max_fragment_chars
    print(f"Profile: {args.profile} (max {limit} chars)")
    print(f"Fragments: {len(fragments)}")
    for index, fragment in enumerate(fragments):
        preview = fragment[:70].replace("\n", " ")
        print(f"  [{index:>3}] {len(fragment):>5} chars  {preview}")
    return 0


async def _handle_seed(args: argparse.Namespace, app_settings: Settings) -> int:
    """Create the tenant and agent, upload the file, register the document."""
    from virtuai.models.document import IngestionMode
    from virtuai.models.results import ErrorPayload
    from virtuai.models.tenant import TenantContext

    path = Path(args.file)
    if not path.is_file():
        print(f"Error: file not found: {path}", file=sys.stderr)
        return 1

    components = await _open_components(app_settings)
    try:
        store = components["document_store"]
        await store.create_tenant(args.tenant, name=args.tenant)
        agent = await store.get_agent(args.agent, args.tenant) if args.agent else None
        if agent is None:
            agent = await store.create_agent(
                args.tenant,
                name=args.agent_name,
                system_prompt=args.system_prompt,
                model=args.model,
                agent_id=args.agent,
            )

        locator = f"{args.tenant}/{agent.agent_id}/{uuid.uuid4().hex}{path.suffix.lower()}"
        await components["blob_store"].upload(locator, path.read_bytes())
        document = await store.create_document(
            args.tenant,
            agent.agent_id,
            title=args.title or path.stem,
            storage_locator=locator,
        )

        print(f"Tenant:   {args.tenant}")
        print(f"Agent:    {agent.agent_id}")
        print(f"Document: {document.document_id} ({document.status.value})")

        if not args.ingest:
            return 0

        outcome = await components["knowledge_core"].ingest_document(
            TenantContext(tenant_id=args.tenant),
            agent.agent_id,
            document.document_id,
            IngestionMode.PROCESS,
        )
        if isinstance(outcome, ErrorPayload):
            print(f"Error: {outcome.message}", file=sys.stderr)
            return 1
        print(f"Ingested: {outcome.fragment_count} fragments")
        return 0
    finally:
        await components["http_client"].aclose()


async def _handle_ingest(args: argparse.Namespace, app_settings: Settings) -> int:
    """Run the ingestion pipeline for one document."""
    from virtuai.models.document import IngestionMode
    from virtuai.models.results import ErrorPayload
    from virtuai.models.tenant import TenantContext

    components = await _open_components(app_settings)
    try:
        print(f"Ingesting document {args.document} ({args.mode})")
        outcome = await components["knowledge_core"].ingest_document(
            TenantContext(tenant_id=args.tenant),
            args.agent,
            args.document,
            IngestionMode(args.mode),
        )
    finally:
        await components["http_client"].aclose()

    if isinstance(outcome, ErrorPayload):
        print(f"Error [{outcome.kind.value}]: {outcome.message}", file=sys.stderr)
        return 1

    print("\nIngestion complete:")
    print(f"  Title:      {outcome.title}")
    print(f"  Fragments:  {outcome.fragment_count}")
    print(f"  Status:     {outcome.status.value}")
    print(f"  Truncated:  {'yes' if outcome.truncated else 'no'}")
    print(f"  Time:       {outcome.ingestion_time:.2f}s")
    return 0


async def _handle_chat(args: argparse.Namespace, app_settings: Settings) -> int:
    """Send one message to an agent and print the reply."""
    from virtuai.models.results import ErrorPayload
    from virtuai.models.tenant import TenantContext
    from virtuai.services.messages import Audience

    ctx = TenantContext(tenant_id=args.tenant) if args.tenant else None
    components = await _open_components(app_settings)
    try:
        outcome = await components["knowledge_core"].chat(
            args.agent,
            args.message,
            session_id=args.session,
            use_knowledge=not args.no_knowledge,
            ctx=ctx,
            audience=Audience.TENANT if ctx else Audience.PUBLIC,
        )
    finally:
        await components["http_client"].aclose()

    if isinstance(outcome, ErrorPayload):
        print(f"Error [{outcome.kind.value}]: {outcome.message}", file=sys.stderr)
        return 1

    print(outcome.reply)
    print(
        f"\n(session {outcome.session_id}, {outcome.grounding.value}, "
        f"{outcome.fragments_used} fragments)"
    )
    return 0


async def _handle_credential(args: argparse.Namespace, app_settings: Settings) -> int:
    """Set, show or delete a tenant's provider key.  Keys print masked."""
    from virtuai.providers.store.sqlite_document_store import SQLiteDocumentStore

    store = SQLiteDocumentStore(db_path=app_settings.database_path)
    await store.initialize()

    if args.action == "set":
        if not args.key or not args.key.strip():
            print("Error: --key is required and must not be blank", file=sys.stderr)
            return 1
        credential = await store.set_credential(args.tenant, args.key)
        print(f"Saved key for {args.tenant}: {credential.masked()}")
        return 0

    if args.action == "show":
        credential = await store.get_credential(args.tenant)
        if credential is None:
            print(f"No key configured for {args.tenant}")
            return 1
        print(f"{args.tenant}: {credential.masked()}")
        return 0

    removed = await store.delete_credential(args.tenant)
    print(f"Deleted key for {args.tenant}" if removed else f"No key configured for {args.tenant}")
    return 0


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="virtuai",
        description="Operate the virtuai knowledge core from the command line.",
    )
    parser.add_argument(
        "--config", default=_DEFAULT_CONFIG, help="YAML config file (default: %(default)s)"
    )
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    seg_parser = subparsers.add_parser("segment", help="Preview fragments for a local file")
    seg_parser.add_argument("--file", required=True, help="Path to a text or PDF file")
    seg_parser.add_argument(
        "--profile", default="paragraph", help="Segmentation profile (paragraph, fixed)"
    )

    seed_parser = subparsers.add_parser("seed", help="Create tenant, agent and document")
    seed_parser.add_argument("--tenant", required=True, help="Tenant id")
    seed_parser.add_argument("--agent", default=None, help="Existing or desired agent id")
    seed_parser.add_argument("--agent-name", default="Assistant", help="Name for a new agent")
    seed_parser.add_argument("--system-prompt", default=None, help="Agent system prompt")
    seed_parser.add_argument("--model", default=None, help="Agent chat model")
    seed_parser.add_argument("--file", required=True, help="Local file to upload")
    seed_parser.add_argument("--title", default=None, help="Document title")
    seed_parser.add_argument(
        "--ingest", action="store_true", help="Run the process pipeline after seeding"
    )

    ingest_parser = subparsers.add_parser("ingest", help="Ingest an existing document")
    ingest_parser.add_argument("--tenant", required=True, help="Tenant id")
    ingest_parser.add_argument("--agent", required=True, help="Agent id")
    ingest_parser.add_argument("--document", required=True, help="Document id")
    ingest_parser.add_argument(
        "--mode",
        choices=["process", "embed"],
        default="process",
        help="process re-extracts the stored file; embed uses attached text",
    )

    chat_parser = subparsers.add_parser("chat", help="Ask an agent one question")
    chat_parser.add_argument("--agent", required=True, help="Agent id")
    chat_parser.add_argument(
        "--tenant", default=None, help="Chat as the owning tenant (actionable errors)"
    )
    chat_parser.add_argument("--session", default=None, help="Session id to continue")
    chat_parser.add_argument(
        "--no-knowledge", action="store_true", help="Answer without document retrieval"
    )
    chat_parser.add_argument("message", help="The user message")

    cred_parser = subparsers.add_parser("credential", help="Manage a tenant's provider key")
    cred_parser.add_argument("action", choices=["set", "show", "delete"])
    cred_parser.add_argument("--tenant", required=True, help="Tenant id")
    cred_parser.add_argument("--key", default=None, help="API key (for set)")

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.

    Loads settings from the environment and the YAML config, configures
    console logging, and dispatches to the subcommand handler.  Exits with
    the handler's return code.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    app_settings = build_settings(args.config)
    configure_logging(log_level=args.log_level or app_settings.log_level, json_output=False)

    if args.command == "segment":
        sys.exit(_handle_segment(args, app_settings))

    handlers = {
        "seed": _handle_seed,
        "ingest": _handle_ingest,
        "chat": _handle_chat,
        "credential": _handle_credential,
    }
    exit_code = asyncio.run(handlers[args.command](args, app_settings))
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
