"""Unit tests for the application factories in virtuai.main."""

from __future__ import annotations

import asyncio

import httpx

from virtuai.main import _build_all, _build_blob_store, create_app
from virtuai.providers.blob.http_blob_store import HTTPBlobStore
from virtuai.providers.blob.local_blob_store import LocalBlobStore
from virtuai.services.knowledge_core import KnowledgeCore
from tests.conftest import make_settings


class TestBuildBlobStore:
    def test_local_by_default(self, tmp_path) -> None:
        client = httpx.AsyncClient()
        assert isinstance(_build_blob_store(make_settings(tmp_path), client), LocalBlobStore)
        asyncio.run(client.aclose())

    def test_http_when_base_url_configured(self, tmp_path) -> None:
        client = httpx.AsyncClient()
        settings = make_settings(tmp_path, blob_base_url="https://files.example.com")
        assert isinstance(_build_blob_store(settings, client), HTTPBlobStore)
        asyncio.run(client.aclose())


class TestBuildAll:
    def test_components_are_wired(self, tmp_path) -> None:
        components = _build_all(make_settings(tmp_path))
        assert set(components) == {
            "http_client",
            "document_store",
            "blob_store",
            "provider_client",
            "segmenter",
            "ingestion_service",
            "chat_service",
            "knowledge_core",
        }
        assert isinstance(components["knowledge_core"], KnowledgeCore)
        assert components["provider_client"].get_provider_name() == "openai"
        asyncio.run(components["http_client"].aclose())


class TestCreateApp:
    def test_routes_are_registered(self) -> None:
        paths = {route.path for route in create_app().routes}
        assert "/api/v1/health" in paths
        assert "/api/v1/widget/chat" in paths
        assert "/api/v1/agents/{agent_id}/documents/{document_id}/process" in paths
