"""业务服务层。"""

from .auth import AuthService
from .email import EmailDispatcher, LoggingEmailSender, SMTPEmailSender, build_email_sender
from .food import FoodService
from .messaging import MessageHub
from .users import UserService

__all__ = [
    "AuthService",
    "EmailDispatcher",
    "SMTPEmailSender",
    "LoggingEmailSender",
    "build_email_sender",
    "FoodService",
    "MessageHub",
    "UserService",
]
