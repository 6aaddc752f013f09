from .middleware import require_payment
from .routes import create_router

__all__ = ["require_payment", "create_router"]
