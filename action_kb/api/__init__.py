"""REST API for the action knowledge base."""

from action_kb.api.app import app, create_app
from action_kb.api.routes import get_knowledge_base, router

__all__ = ["app", "create_app", "get_knowledge_base", "router"]
