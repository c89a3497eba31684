from .user import User  # noqa: F401
from .service import Service, ServiceStatus  # noqa: F401
from .order import Order, OrderStatus  # noqa: F401
from .order_event import OrderEvent  # noqa: F401
from .order_progress import OrderProgress  # noqa: F401
from .payment import Payment, PaymentStatus  # noqa: F401

from .wallet import Wallet  # noqa: F401
from .wallet_txn import WalletTxn, WalletTxnType  # noqa: F401
from .payout_account import PayoutAccount  # noqa: F401
from .payout import PayoutRequest, PayoutStatus  # noqa: F401
from .dispute import Dispute, DisputeStatus, DisputeResolution  # noqa: F401

from .notification import Notification  # noqa: F401

from .audit_log import AuditLog  # noqa: F401

from .idempotency_key import IdempotencyKey  # noqa: F401
