from .conversation import ConversationData, deserialize_conversation, serialize_conversation

__all__ = ["ConversationData", "deserialize_conversation", "serialize_conversation"]
