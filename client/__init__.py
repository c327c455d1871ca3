from .conversation_client import ClientState, ConversationClient, new_session_id

__all__ = ["ClientState", "ConversationClient", "new_session_id"]
