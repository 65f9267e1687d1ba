from .routes.messages import messages_bp
from .routes.public import public_bp

# Application factory is defined in server.py; the blueprints are re-exported
# here so tests or alternative runners can build an app without importing
# server.py and triggering its side-effects.

__all__ = [
    "messages_bp",
    "public_bp",
]
