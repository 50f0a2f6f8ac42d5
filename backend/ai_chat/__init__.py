"""Learn FM AI chat: authenticated, quota-limited RAG mediator in front of an LLM provider."""

__version__ = "0.1.0"
