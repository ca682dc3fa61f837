"""SQLite-backed document store gateway.

Persists tenants, agents, documents, fragments, credentials and chat
transcripts in a single SQLite database using ``aiosqlite`` for async I/O.

Fragment vectors are stored as JSON arrays and ranked in Python with cosine
similarity.  Only fragments whose document is ``processed`` are ever
returned by :meth:`SQLiteDocumentStore.search_fragments`, and
:meth:`SQLiteDocumentStore.commit_fragments` swaps the fragment set and the
status in one transaction, so readers never observe a half-applied run.
"""

from __future__ import annotations

import json
import math
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import aiosqlite
import structlog

from virtuai.interfaces.document_store import IDocumentStore
from virtuai.models.chat import ChatMessage, ChatRole
from virtuai.models.document import Document, DocumentStatus, Fragment, FragmentMatch
from virtuai.models.tenant import Agent, Credential
from virtuai.utils.errors import InvalidTransitionError, NotFoundError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/virtuai.db")

_NOW = "strftime('%Y-%m-%dT%H:%M:%fZ', 'now')"

_CREATE_TABLES_SQL = [
    f"""\
CREATE TABLE IF NOT EXISTS tenants (
    tenant_id   TEXT PRIMARY KEY,
    name        TEXT NOT NULL DEFAULT '',
    created_at  TEXT NOT NULL DEFAULT ({_NOW})
);
""",
    f"""\
CREATE TABLE IF NOT EXISTS agents (
    agent_id       TEXT PRIMARY KEY,
    tenant_id      TEXT NOT NULL REFERENCES tenants(tenant_id),
    name           TEXT NOT NULL DEFAULT '',
    system_prompt  TEXT,
    model          TEXT,
    created_at     TEXT NOT NULL DEFAULT ({_NOW})
);
""",
    f"""\
CREATE TABLE IF NOT EXISTS documents (
    document_id      TEXT PRIMARY KEY,
    tenant_id        TEXT NOT NULL REFERENCES tenants(tenant_id),
    agent_id         TEXT NOT NULL REFERENCES agents(agent_id),
    title            TEXT,
    storage_locator  TEXT,
    content          TEXT,
    status           TEXT NOT NULL DEFAULT 'uploaded',
    error_reason     TEXT,
    created_at       TEXT NOT NULL DEFAULT ({_NOW}),
    updated_at       TEXT NOT NULL DEFAULT ({_NOW})
);
""",
    """\
CREATE TABLE IF NOT EXISTS fragments (
    document_id  TEXT    NOT NULL REFERENCES documents(document_id) ON DELETE CASCADE,
    tenant_id    TEXT    NOT NULL,
    agent_id     TEXT    NOT NULL,
    idx          INTEGER NOT NULL,
    content      TEXT    NOT NULL,
    embedding    TEXT    NOT NULL,
    PRIMARY KEY (document_id, idx)
);
""",
    f"""\
CREATE TABLE IF NOT EXISTS credentials (
    tenant_id   TEXT PRIMARY KEY REFERENCES tenants(tenant_id),
    api_key     TEXT NOT NULL,
    updated_at  TEXT NOT NULL DEFAULT ({_NOW})
);
""",
    f"""\
CREATE TABLE IF NOT EXISTS messages (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    tenant_id   TEXT NOT NULL,
    agent_id    TEXT NOT NULL,
    session_id  TEXT NOT NULL,
    role        TEXT NOT NULL,
    content     TEXT NOT NULL,
    created_at  TEXT NOT NULL DEFAULT ({_NOW})
);
""",
]

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_agents_tenant ON agents(tenant_id);",
    "CREATE INDEX IF NOT EXISTS idx_documents_scope ON documents(tenant_id, agent_id);",
    "CREATE INDEX IF NOT EXISTS idx_fragments_scope ON fragments(tenant_id, agent_id);",
    "CREATE INDEX IF NOT EXISTS idx_messages_session ON messages(tenant_id, agent_id, session_id);",
]

_SELECT_DOCUMENT_SQL = """\
SELECT document_id, tenant_id, agent_id, title, storage_locator, content,
       status, error_reason, created_at
FROM documents
WHERE tenant_id = ? AND agent_id = ? AND document_id = ?;
"""

_UPDATE_STATUS_SQL = f"""\
UPDATE documents
SET status = ?, error_reason = ?, updated_at = {_NOW}
WHERE document_id = ?;
"""

_INSERT_FRAGMENT_SQL = """\
INSERT INTO fragments (document_id, tenant_id, agent_id, idx, content, embedding)
VALUES (?, ?, ?, ?, ?, ?);
"""

_DELETE_FRAGMENTS_IF_STATUS_SQL = """\
DELETE FROM fragments
WHERE document_id = ?
  AND EXISTS (SELECT 1 FROM documents WHERE document_id = ? AND status = ?);
"""

_SEARCH_CANDIDATES_SQL = """\
SELECT f.document_id, f.idx, f.content, f.embedding
FROM fragments f
JOIN documents d ON d.document_id = f.document_id
WHERE f.tenant_id = ? AND f.agent_id = ? AND d.status = 'processed';
"""

_UPSERT_CREDENTIAL_SQL = f"""\
INSERT INTO credentials (tenant_id, api_key)
VALUES (?, ?)
ON CONFLICT(tenant_id)
DO UPDATE SET api_key = excluded.api_key, updated_at = {_NOW};
"""


def _cosine_similarity(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return dot / (norm_a * norm_b)


class SQLiteDocumentStore(IDocumentStore):
    """SQLite implementation of :class:`IDocumentStore`.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file.  Parent directories are created
        on :meth:`initialize`.
    """

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            await db.execute("PRAGMA foreign_keys = ON;")
            yield db

    async def initialize(self) -> None:
        """Create tables and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self._connect() as db:
            await db.execute("PRAGMA journal_mode = WAL;")
            for table_sql in _CREATE_TABLES_SQL:
                await db.execute(table_sql)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("document_store_initialized", path=str(self._db_path))

    # ------------------------------------------------------------------
    # Agents
    # ------------------------------------------------------------------

    async def get_agent(self, agent_id: str, tenant_id: str | None = None) -> Agent | None:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT agent_id, tenant_id, name, system_prompt, model FROM agents WHERE agent_id = ?;",
                (agent_id,),
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        if tenant_id is not None and row["tenant_id"] != tenant_id:
            return None
        return Agent(**dict(row))

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def get_document(
        self, tenant_id: str, agent_id: str, document_id: str
    ) -> Document | None:
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_DOCUMENT_SQL, (tenant_id, agent_id, document_id))
            row = await cursor.fetchone()
        return Document(**dict(row)) if row is not None else None

    async def set_document_status(
        self,
        document_id: str,
        status: DocumentStatus,
        error_reason: str | None = None,
    ) -> None:
        async with self._connect() as db:
            await db.execute("BEGIN IMMEDIATE;")
            try:
                await self._check_transition(db, document_id, status)
                await db.execute(_UPDATE_STATUS_SQL, (status.value, error_reason, document_id))
                await db.commit()
            except Exception:
                await db.rollback()
                raise
        logger.debug("document_status_changed", document_id=document_id, status=status.value)

    async def set_document_text(
        self, document_id: str, text: str, title: str | None = None
    ) -> None:
        async with self._connect() as db:
            cursor = await db.execute(
                f"UPDATE documents SET content = ?, title = COALESCE(?, title), "
                f"updated_at = {_NOW} WHERE document_id = ?;",
                (text, title, document_id),
            )
            await db.commit()
            if cursor.rowcount == 0:
                raise NotFoundError(message=f"Document {document_id} not found", provider_name="sqlite")

    # ------------------------------------------------------------------
    # Fragments
    # ------------------------------------------------------------------

    async def delete_fragments(
        self, document_id: str, only_if_status: DocumentStatus | None = None
    ) -> None:
        async with self._connect() as db:
            if only_if_status is None:
                await db.execute("DELETE FROM fragments WHERE document_id = ?;", (document_id,))
            else:
                await db.execute(
                    _DELETE_FRAGMENTS_IF_STATUS_SQL,
                    (document_id, document_id, only_if_status.value),
                )
            await db.commit()

    async def insert_fragments(self, fragments: list[Fragment]) -> None:
        if not fragments:
            return
        async with self._connect() as db:
            await db.executemany(_INSERT_FRAGMENT_SQL, [self._fragment_row(f) for f in fragments])
            await db.commit()

    async def commit_fragments(self, document_id: str, fragments: list[Fragment]) -> None:
        async with self._connect() as db:
            await db.execute("BEGIN IMMEDIATE;")
            try:
                await self._check_transition(db, document_id, DocumentStatus.PROCESSED)
                await db.execute("DELETE FROM fragments WHERE document_id = ?;", (document_id,))
                await db.executemany(
                    _INSERT_FRAGMENT_SQL,
                    [self._fragment_row(f) for f in sorted(fragments, key=lambda f: f.index)],
                )
                await db.execute(
                    _UPDATE_STATUS_SQL, (DocumentStatus.PROCESSED.value, None, document_id)
                )
                await db.commit()
            except Exception:
                await db.rollback()
                raise
        logger.info("fragments_committed", document_id=document_id, count=len(fragments))

    async def search_fragments(
        self,
        tenant_id: str,
        agent_id: str,
        query_vector: list[float],
        top_k: int,
    ) -> list[FragmentMatch]:
        """Rank the scope's processed fragments by cosine similarity.

        This is a linear scan: every candidate row for (tenant, agent) is
        loaded and its JSON vector decoded on each query, so cost grows with
        the fragment count.  There is no approximate-nearest-neighbour index;
        a deployment with large corpora should back :class:`IDocumentStore`
        with a vector-indexed store instead.
        """
        if top_k < 1 or not query_vector:
            return []
        async with self._connect() as db:
            cursor = await db.execute(_SEARCH_CANDIDATES_SQL, (tenant_id, agent_id))
            rows = await cursor.fetchall()

        matches: list[FragmentMatch] = []
        for row in rows:
            vector = json.loads(row["embedding"])
            if len(vector) != len(query_vector):
                continue
            matches.append(
                FragmentMatch(
                    document_id=row["document_id"],
                    index=row["idx"],
                    content=row["content"],
                    score=_cosine_similarity(query_vector, vector),
                )
            )
        matches.sort(key=lambda m: (-m.score, m.document_id, m.index))
        return matches[:top_k]

    async def list_fragments(self, document_id: str) -> list[Fragment]:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT document_id, tenant_id, agent_id, idx, content, embedding "
                "FROM fragments WHERE document_id = ? ORDER BY idx;",
                (document_id,),
            )
            rows = await cursor.fetchall()
        return [
            Fragment(
                document_id=r["document_id"],
                tenant_id=r["tenant_id"],
                agent_id=r["agent_id"],
                index=r["idx"],
                content=r["content"],
                embedding=json.loads(r["embedding"]),
            )
            for r in rows
        ]

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    async def get_credential(self, tenant_id: str) -> Credential | None:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT tenant_id, api_key FROM credentials WHERE tenant_id = ?;", (tenant_id,)
            )
            row = await cursor.fetchone()
        if row is None or not row["api_key"]:
            return None
        return Credential(tenant_id=row["tenant_id"], api_key=row["api_key"])

    async def set_credential(self, tenant_id: str, api_key: str) -> Credential:
        key = api_key.strip()
        if not key:
            raise ValueError("api_key must not be empty")
        async with self._connect() as db:
            await db.execute("INSERT OR IGNORE INTO tenants (tenant_id) VALUES (?);", (tenant_id,))
            await db.execute(_UPSERT_CREDENTIAL_SQL, (tenant_id, key))
            await db.commit()
        credential = Credential(tenant_id=tenant_id, api_key=key)
        logger.info("credential_saved", tenant_id=tenant_id, api_key=credential.masked())
        return credential

    async def delete_credential(self, tenant_id: str) -> bool:
        async with self._connect() as db:
            cursor = await db.execute("DELETE FROM credentials WHERE tenant_id = ?;", (tenant_id,))
            await db.commit()
            deleted = cursor.rowcount > 0
        logger.info("credential_deleted", tenant_id=tenant_id, existed=deleted)
        return deleted

    # ------------------------------------------------------------------
    # Transcripts
    # ------------------------------------------------------------------

    async def append_message(
        self,
        tenant_id: str,
        agent_id: str,
        session_id: str,
        role: ChatRole,
        content: str,
    ) -> None:
        async with self._connect() as db:
            await db.execute(
                "INSERT INTO messages (tenant_id, agent_id, session_id, role, content) "
                "VALUES (?, ?, ?, ?, ?);",
                (tenant_id, agent_id, session_id, role.value, content),
            )
            await db.commit()

    async def list_messages(
        self, tenant_id: str, agent_id: str, session_id: str
    ) -> list[ChatMessage]:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT tenant_id, agent_id, session_id, role, content, created_at FROM messages "
                "WHERE tenant_id = ? AND agent_id = ? AND session_id = ? ORDER BY id;",
                (tenant_id, agent_id, session_id),
            )
            rows = await cursor.fetchall()
        return [ChatMessage(**dict(r)) for r in rows]

    # ------------------------------------------------------------------
    # Administrative helpers
    # ------------------------------------------------------------------

    async def create_tenant(self, tenant_id: str, name: str = "") -> None:
        async with self._connect() as db:
            await db.execute(
                "INSERT OR IGNORE INTO tenants (tenant_id, name) VALUES (?, ?);", (tenant_id, name)
            )
            await db.commit()

    async def create_agent(
        self,
        tenant_id: str,
        name: str,
        system_prompt: str | None = None,
        model: str | None = None,
        agent_id: str | None = None,
    ) -> Agent:
        agent = Agent(
            agent_id=agent_id or str(uuid.uuid4()),
            tenant_id=tenant_id,
            name=name,
            system_prompt=system_prompt,
            model=model,
        )
        async with self._connect() as db:
            await db.execute("INSERT OR IGNORE INTO tenants (tenant_id) VALUES (?);", (tenant_id,))
            await db.execute(
                "INSERT INTO agents (agent_id, tenant_id, name, system_prompt, model) "
                "VALUES (?, ?, ?, ?, ?);",
                (agent.agent_id, tenant_id, name, system_prompt, model),
            )
            await db.commit()
        return agent

    async def create_document(
        self,
        tenant_id: str,
        agent_id: str,
        title: str | None = None,
        storage_locator: str | None = None,
        content: str | None = None,
        document_id: str | None = None,
    ) -> Document:
        if await self.get_agent(agent_id, tenant_id) is None:
            raise NotFoundError(message=f"Agent {agent_id} not found", provider_name="sqlite")
        doc_id = document_id or str(uuid.uuid4())
        async with self._connect() as db:
            await db.execute(
                "INSERT INTO documents (document_id, tenant_id, agent_id, title, storage_locator, content) "
                "VALUES (?, ?, ?, ?, ?, ?);",
                (doc_id, tenant_id, agent_id, title, storage_locator, content),
            )
            await db.commit()
        document = await self.get_document(tenant_id, agent_id, doc_id)
        if document is None:
            raise NotFoundError(message=f"Document {doc_id} not found", provider_name="sqlite")
        return document

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    async def _check_transition(
        db: aiosqlite.Connection, document_id: str, target: DocumentStatus
    ) -> None:
        cursor = await db.execute(
            "SELECT status FROM documents WHERE document_id = ?;", (document_id,)
        )
        row = await cursor.fetchone()
        if row is None:
            raise NotFoundError(message=f"Document {document_id} not found", provider_name="sqlite")
        current = DocumentStatus(row["status"])
        if not current.can_transition_to(target):
            raise InvalidTransitionError(
                message=f"Cannot move document {document_id} from {current.value} to {target.value}",
                provider_name="sqlite",
            )

    @staticmethod
    def _fragment_row(fragment: Fragment) -> tuple:
        return (
            fragment.document_id,
            fragment.tenant_id,
            fragment.agent_id,
            fragment.index,
            fragment.content,
            json.dumps(fragment.embedding),
        )
