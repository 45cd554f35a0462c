from .routes.chat import chat_bp
from .routes.notification import notification_bp
from .routes.health import health_bp

# Application factory lives in server.py; the blueprints are re-exported here
# so tests and alternative runners can build an app without importing it.

__all__ = ["chat_bp", "notification_bp", "health_bp"]
