"""Conversation state: messages, turns, and the voice loop orchestrator."""

from .models import (
    Attachment,
    ChatMessage,
    ChatResponse,
    ConversationLog,
    ConversationSession,
    OrchestratorState,
    Source,
    Turn,
    load_image_attachment,
)
from .orchestrator import ConversationOrchestrator, VoiceLoopTimings
from .turns import ChatTransport, TurnExecutor

__all__ = [
    "Attachment",
    "ChatMessage",
    "ChatResponse",
    "ChatTransport",
    "ConversationLog",
    "ConversationOrchestrator",
    "ConversationSession",
    "OrchestratorState",
    "Source",
    "Turn",
    "TurnExecutor",
    "VoiceLoopTimings",
    "load_image_attachment",
]
