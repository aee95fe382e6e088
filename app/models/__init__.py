from app.models.lender import Lender
from app.models.prospect import Prospect
from app.models.trust_account_event import TrustAccountEvent
from app.models.user import User

__all__ = [
    "Lender",
    "Prospect",
    "TrustAccountEvent",
    "User",
]
