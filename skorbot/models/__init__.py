from skorbot.models.credit import PaymentHistory, Tradeline, UserCreditInsight
from skorbot.models.transcript import ChatAnalytics, ChatMessage, ChatSession

__all__ = [
    "UserCreditInsight",
    "Tradeline",
    "PaymentHistory",
    "ChatSession",
    "ChatMessage",
    "ChatAnalytics",
]
