from archtutor.services.memory.conversation_memory import ConversationMemory, extract_topics

__all__ = ["ConversationMemory", "extract_topics"]
