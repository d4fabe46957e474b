"""SQLAlchemy ORM models.

Models represent database tables:
- shops: Seller storefronts and their policy status
- trust_scores: Cached trust score per shop
- products, reviews: Catalog and ratings (read by policy checks)
- orders, order_items: Checkout records
- escrow_transactions, pending_escrows: Held funds and the escrow outbox
- disputes: Buyer complaints and their automatic resolution
- payouts: Batched transfers of released funds
- violations: Append-only policy audit log
"""

from shopguard.models.shop import Shop, ShopStatus
from shopguard.models.trust_score import TrustScoreRecord
from shopguard.models.product import Product, ProductStatus
from shopguard.models.review import Review
from shopguard.models.order import Order, OrderItem, OrderStatus
from shopguard.models.payout import Payout, PayoutStatus
from shopguard.models.escrow import EscrowStatus, EscrowTransaction, PendingEscrow
from shopguard.models.dispute import Dispute, DisputeStatus
from shopguard.models.violation import Violation, ViolationSeverity

__all__ = [
    "Dispute",
    "DisputeStatus",
    "EscrowStatus",
    "EscrowTransaction",
    "Order",
    "OrderItem",
    "OrderStatus",
    "Payout",
    "PayoutStatus",
    "PendingEscrow",
    "Product",
    "ProductStatus",
    "Review",
    "Shop",
    "ShopStatus",
    "TrustScoreRecord",
    "Violation",
    "ViolationSeverity",
]
