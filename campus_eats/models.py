"""
SQLAlchemy Database Models

Campus food-ordering schema:
- Universities, users and outlets (multi-tenant)
- Dishes, orders and order items
- Group orders
- Ratings, token rewards, reward-wheel claims
- Challenges and badges

Version: 1.0.0
"""

import enum
import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from campus_eats.core.clock import as_utc, utcnow
from campus_eats.database import Base


def new_id() -> str:
    return str(uuid.uuid4())


# =============================================================================
# ENUMS
# =============================================================================

class UserRole(str, enum.Enum):
    """Roles supplied by the identity provider."""
    STUDENT = "student"
    OUTLET_OWNER = "outlet_owner"
    UNIVERSITY_ADMIN = "university_admin"
    APP_ADMIN = "app_admin"


class OrderStatus(str, enum.Enum):
    """
    Order status workflow.

        pending → confirmed → preparing → ready → completed
        pending → cancelled
        confirmed → cancelled
    """
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED})

ACTIVE_STATUSES = tuple(s for s in OrderStatus if s not in TERMINAL_STATUSES)

ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.READY}),
    OrderStatus.READY: frozenset({OrderStatus.COMPLETED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    UPI = "upi"


class GroupOrderStatus(str, enum.Enum):
    OPEN = "open"
    CLOSED = "closed"
    COMPLETED = "completed"


class RewardType(str, enum.Enum):
    DISCOUNT = "discount"
    FREE_ITEM = "free_item"
    OFFER = "offer"
    NO_WIN = "no_win"


class ChallengeType(str, enum.Enum):
    DAILY = "daily"
    WEEKLY = "weekly"


# =============================================================================
# UNIVERSITIES & USERS
# =============================================================================

class University(Base):
    """A campus; outlets and students belong to exactly one."""
    __tablename__ = "universities"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(200), nullable=False)
    location = Column(String(200), nullable=False)
    code = Column(String(32), nullable=False, unique=True)  # e.g. "IIT-DEL"
    image_url = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    def __repr__(self):
        return f"<University {self.code}>"


class User(Base):
    """
    Marketplace user.

    The token balance is only ever changed with atomic SQL arithmetic
    (see services.ledger) and can never go negative.
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), nullable=False, unique=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    profile_image_url = Column(String(500), nullable=True)

    tokens = Column(Integer, nullable=False, default=0)
    role = Column(Enum(UserRole), nullable=False, default=UserRole.STUDENT)
    university_id = Column(String(36), ForeignKey("universities.id"), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    __table_args__ = (
        CheckConstraint("tokens >= 0", name="ck_users_tokens_non_negative"),
    )

    def __repr__(self):
        return f"<User {self.email} - {self.role.value}>"


# =============================================================================
# OUTLETS & DISHES
# =============================================================================

class Outlet(Base):
    """
    A food outlet on a campus.

    `active_orders_count` tracks orders in non-terminal states; the chill
    period is a stored flag + expiry that readers must evaluate against the
    current time (see `is_effectively_chilled`).
    """
    __tablename__ = "outlets"

    id = Column(String(36), primary_key=True, default=new_id)
    owner_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    university_id = Column(String(36), ForeignKey("universities.id"), nullable=False, index=True)

    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    image_url = Column(String(500), nullable=True)
    average_price = Column(Integer, nullable=False, default=0)  # in rupees

    rating = Column(Float, nullable=False, default=0.0)
    total_ratings = Column(Integer, nullable=False, default=0)

    # =========================================================================
    # LOAD THROTTLING
    # =========================================================================
    active_orders_count = Column(Integer, nullable=False, default=0)
    max_active_orders = Column(Integer, nullable=False, default=10)
    is_chill_period = Column(Boolean, nullable=False, default=False)
    chill_period_ends_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    __table_args__ = (
        CheckConstraint("active_orders_count >= 0", name="ck_outlets_active_orders_non_negative"),
        CheckConstraint("max_active_orders > 0", name="ck_outlets_max_active_orders_positive"),
    )

    def is_effectively_chilled(self, now=None) -> bool:
        """True while the chill flag is set and its expiry lies in the future."""
        now = now or utcnow()
        ends_at = as_utc(self.chill_period_ends_at)
        return bool(self.is_chill_period) and ends_at is not None and now < ends_at

    def __repr__(self):
        return f"<Outlet {self.name} - {self.active_orders_count}/{self.max_active_orders}>"


class Dish(Base):
    """Menu item; `order_count` only ever grows and feeds trending rankings."""
    __tablename__ = "dishes"

    id = Column(String(36), primary_key=True, default=new_id)
    outlet_id = Column(String(36), ForeignKey("outlets.id", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    image_url = Column(String(500), nullable=True)
    price = Column(Integer, nullable=False)  # in rupees
    category = Column(String(50), nullable=False)  # main, beverage, side, dessert
    is_available = Column(Boolean, nullable=False, default=True)
    is_customizable = Column(Boolean, nullable=False, default=True)

    # Nutrition (grams, except calories)
    calories = Column(Integer, nullable=True)
    protein = Column(Integer, nullable=True)
    carbs = Column(Integer, nullable=True)
    sugar = Column(Integer, nullable=True)

    order_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_dishes_price_non_negative"),
    )

    def __repr__(self):
        return f"<Dish {self.name} - ₹{self.price}>"


# =============================================================================
# ORDERS
# =============================================================================

class GroupOrder(Base):
    """Shareable, outlet-scoped aggregation of individual orders."""
    __tablename__ = "group_orders"

    id = Column(String(36), primary_key=True, default=new_id)
    creator_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    outlet_id = Column(String(36), ForeignKey("outlets.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False)  # e.g. "CS Class Lunch"
    status = Column(Enum(GroupOrderStatus), nullable=False, default=GroupOrderStatus.OPEN)
    total_amount = Column(Integer, nullable=False, default=0)
    share_link = Column(String(64), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    closed_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<GroupOrder {self.share_link} - {self.status.value}>"


class Order(Base):
    """
    A student's order at one outlet.

    `qr_code` is the pickup credential: generated once at creation and
    unique across all orders.
    """
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    outlet_id = Column(String(36), ForeignKey("outlets.id"), nullable=False, index=True)
    group_order_id = Column(String(36), ForeignKey("group_orders.id"), nullable=True)

    status = Column(Enum(OrderStatus), nullable=False, default=OrderStatus.PENDING, index=True)

    # =========================================================================
    # PAYMENT
    # =========================================================================
    payment_method = Column(Enum(PaymentMethod), nullable=False, default=PaymentMethod.CASH)
    payment_status = Column(String(20), nullable=False, default="pending")  # pending, completed
    total_amount = Column(Integer, nullable=False)

    special_instructions = Column(Text, nullable=True)
    estimated_ready_time = Column(DateTime(timezone=True), nullable=True)
    qr_code = Column(String(64), nullable=False, unique=True)

    # =========================================================================
    # TIMESTAMPS
    # =========================================================================
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=utcnow)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="ck_orders_total_non_negative"),
        Index("idx_orders_outlet_status", "outlet_id", "status"),
    )

    def __repr__(self):
        return f"<Order {self.id} - {self.status.value}>"


class OrderItem(Base):
    """Line item; captures the price at order time. Never updated."""
    __tablename__ = "order_items"

    id = Column(String(36), primary_key=True, default=new_id)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    dish_id = Column(String(36), ForeignKey("dishes.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    price = Column(Integer, nullable=False)
    customizations = Column(Text, nullable=True)  # e.g. "No onion, Extra cheese"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
    )


# =============================================================================
# RATINGS
# =============================================================================

class Rating(Base):
    """One rating per completed order (unique on order_id)."""
    __tablename__ = "ratings"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, unique=True)
    outlet_id = Column(String(36), ForeignKey("outlets.id"), nullable=False, index=True)
    dish_id = Column(String(36), ForeignKey("dishes.id"), nullable=True)
    rating = Column(Integer, nullable=False)  # 1-5
    review = Column(Text, nullable=True)
    tokens_earned = Column(Integer, nullable=False, default=5)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    __table_args__ = (
        CheckConstraint("rating BETWEEN 1 AND 5", name="ck_ratings_range"),
    )


# =============================================================================
# REWARD WHEEL
# =============================================================================

class Reward(Base):
    """
    Reward-wheel catalog entry.

    `probability` is a relative weight; weights need not sum to 100.
    `position` fixes declaration order, which decides ties in selection.
    """
    __tablename__ = "rewards"

    id = Column(String(36), primary_key=True, default=new_id)
    type = Column(Enum(RewardType), nullable=False)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    value = Column(Integer, nullable=True)  # discount percentage or item value
    probability = Column(Integer, nullable=False)
    position = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("probability >= 0", name="ck_rewards_probability_non_negative"),
    )

    def __repr__(self):
        return f"<Reward {self.title} (w={self.probability})>"


class RewardClaim(Base):
    """Immutable record of one spin; one row per spin whatever the outcome."""
    __tablename__ = "reward_claims"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    reward_id = Column(String(36), ForeignKey("rewards.id"), nullable=False)
    tokens_spent = Column(Integer, nullable=False)
    is_used = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    used_at = Column(DateTime(timezone=True), nullable=True)


# =============================================================================
# GAMIFICATION
# =============================================================================

class Challenge(Base):
    __tablename__ = "challenges"

    id = Column(String(36), primary_key=True, default=new_id)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    type = Column(Enum(ChallengeType), nullable=False)
    requirement = Column(Integer, nullable=False)  # e.g. "Order 3 times"
    reward_tokens = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)


class Badge(Base):
    __tablename__ = "badges"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text, nullable=False)
    icon = Column(String(50), nullable=False)  # emoji or icon identifier
    requirement = Column(Text, nullable=False)


class UserBadge(Base):
    """Earned badge; at most one row per (user, badge)."""
    __tablename__ = "user_badges"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    badge_id = Column(String(36), ForeignKey("badges.id"), nullable=False)
    earned_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "badge_id", name="uq_user_badges_user_badge"),
    )
