from .conversation_store import ConversationStateStore, SQLiteConversationStateStore
from .database import SQLiteMemoryDB
from .history_store import ChatHistoryStore

__all__ = [
    "ChatHistoryStore",
    "ConversationStateStore",
    "SQLiteConversationStateStore",
    "SQLiteMemoryDB",
]
