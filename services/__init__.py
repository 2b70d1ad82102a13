from services.message_service import MessageService
from services.sender import MessageSenderService

__all__ = ["MessageService", "MessageSenderService"]
