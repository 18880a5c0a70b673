from .chat import router as chat_router
from .errors import register_exception_handlers
from .sessions import router as sessions_router

__all__ = ["chat_router", "sessions_router", "register_exception_handlers"]
