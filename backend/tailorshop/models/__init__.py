from .auth import User, SessionToken
from .orders import Order, Payment, Attachment
from .communications import Notification
from .security import SecurityEvent

__all__ = [
    'User', 'SessionToken',
    'Order', 'Payment', 'Attachment',
    'Notification',
    'SecurityEvent',
]
