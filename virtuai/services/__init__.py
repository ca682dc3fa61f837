"""Core services: segmentation, ingestion, chat and the caller-facing facade."""

from virtuai.services.chat_service import ChatService, build_context_block
from virtuai.services.ingestion_service import IngestionService
from virtuai.services.knowledge_core import KnowledgeCore
from virtuai.services.messages import Audience, friendly_message, to_error_payload
from virtuai.services.segmenter import (
    SegmentationPolicy,
    SegmentationProfile,
    Segmenter,
    segment,
)

__all__ = [
    "Audience",
    "ChatService",
    "IngestionService",
    "KnowledgeCore",
    "SegmentationPolicy",
    "SegmentationProfile",
    "Segmenter",
    "build_context_block",
    "friendly_message",
    "segment",
    "to_error_payload",
]
