"""pixelchat - chat with an LLM that can draw."""

from .orchestrator import TurnOrchestrator
from .projector import project_history
from .state import ConversationStateStore
from .streaming import StreamableUI, StreamableValue

__version__ = "0.1.0"

__all__ = ["ConversationStateStore", "StreamableUI", "StreamableValue", "TurnOrchestrator", "project_history"]
