"""
Pydantic Schemas for Request/Response Validation

Covers:
- Accounts and universities
- Orders, order items and pickup
- Outlets, dishes and chill periods
- Ratings, the reward wheel and token balances
- Leaderboard, badges, challenges and group orders

Version: 1.0.0
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from campus_eats.models import (
    ChallengeType,
    GroupOrderStatus,
    OrderStatus,
    PaymentMethod,
    RewardType,
    UserRole,
)


# =============================================================================
# ACCOUNTS
# =============================================================================

class UniversityResponse(BaseModel):
    id: str
    name: str
    location: str
    code: str
    image_url: Optional[str] = None

    class Config:
        from_attributes = True


class UserResponse(BaseModel):
    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None
    role: UserRole
    tokens: int
    university_id: Optional[str] = None

    class Config:
        from_attributes = True


class UniversitySelect(BaseModel):
    """A student's one-time university choice."""
    university_id: str = Field(..., min_length=1, examples=["iit-delhi"])


# =============================================================================
# ORDER REQUESTS
# =============================================================================

class OrderItemCreate(BaseModel):
    """Single item in an order."""
    dish_id: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=1, le=99, examples=[2])
    price: int = Field(..., ge=0, examples=[120])
    customizations: Optional[str] = Field(None, max_length=200, examples=["No onion, Extra cheese"])


class OrderCreate(BaseModel):
    """Request schema for placing a new order."""
    outlet_id: str
    items: List[OrderItemCreate] = Field(..., min_length=1)
    total_amount: int = Field(..., ge=0, examples=[240])
    payment_method: PaymentMethod = Field(default=PaymentMethod.CASH, examples=["cash"])
    special_instructions: Optional[str] = Field(None, max_length=500)
    group_order_id: Optional[str] = None


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class ScanRequest(BaseModel):
    """Outlet-side pickup scan."""
    qr_code: str = Field(..., min_length=1)
    outlet_id: str


# =============================================================================
# ORDER RESPONSES
# =============================================================================

class OrderItemResponse(BaseModel):
    id: str
    dish_id: str
    dish_name: str
    quantity: int
    price: int
    customizations: Optional[str] = None

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    """Response schema for a single order."""
    id: str
    user_id: str
    outlet_id: str
    group_order_id: Optional[str] = None
    status: OrderStatus
    payment_method: PaymentMethod
    payment_status: str
    total_amount: int
    special_instructions: Optional[str] = None
    estimated_ready_time: Optional[datetime] = None
    qr_code: str
    created_at: datetime
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class OrderDetailResponse(OrderResponse):
    items: List[OrderItemResponse] = []


class OrderHistoryEntry(OrderResponse):
    outlet_name: str
    item_count: int


class OrderListResponse(BaseModel):
    """Response for listing multiple orders."""
    total: int
    orders: List[OrderResponse]


class OrderHistoryResponse(BaseModel):
    total: int
    orders: List[OrderHistoryEntry]


class PickupVerificationResponse(BaseModel):
    """What outlet staff see after entering a pickup code."""
    order: OrderDetailResponse
    outlet_id: str
    outlet_name: str


# =============================================================================
# OUTLETS & DISHES
# =============================================================================

class OutletResponse(BaseModel):
    id: str
    owner_id: str
    university_id: str
    name: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    average_price: int
    rating: float
    total_ratings: int
    active_orders_count: int
    max_active_orders: int
    is_chill_period: bool
    chill_period_ends_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ChillPeriodUpdate(BaseModel):
    is_active: bool
    duration_minutes: Optional[int] = Field(None, examples=[30])


class DishResponse(BaseModel):
    id: str
    outlet_id: str
    name: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    price: int
    category: str
    is_available: bool
    is_customizable: bool
    calories: Optional[int] = None
    protein: Optional[int] = None
    carbs: Optional[int] = None
    sugar: Optional[int] = None
    order_count: int

    class Config:
        from_attributes = True


class OutletMenuResponse(OutletResponse):
    dishes: List[DishResponse] = []


class ComfortDishResponse(BaseModel):
    dish: DishResponse
    outlet_name: str
    times_ordered: int

    class Config:
        from_attributes = True


# =============================================================================
# RATINGS & TOKENS
# =============================================================================

class RatingCreate(BaseModel):
    order_id: str
    rating: int = Field(..., ge=1, le=5)
    review: Optional[str] = Field(None, max_length=1000)
    dish_id: Optional[str] = None


class RatingResponse(BaseModel):
    id: str
    order_id: str
    outlet_id: str
    dish_id: Optional[str] = None
    rating: int
    review: Optional[str] = None
    tokens_earned: int
    created_at: datetime

    class Config:
        from_attributes = True


class TokenBalanceResponse(BaseModel):
    user_id: str
    tokens: int


# =============================================================================
# REWARD WHEEL
# =============================================================================

class RewardResponse(BaseModel):
    id: str
    type: RewardType
    title: str
    description: Optional[str] = None
    value: Optional[int] = None
    probability: int

    class Config:
        from_attributes = True


class RewardClaimResponse(BaseModel):
    id: str
    reward_id: str
    tokens_spent: int
    is_used: bool
    created_at: datetime
    used_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ClaimWithRewardResponse(RewardClaimResponse):
    reward: RewardResponse


class SpinResponse(BaseModel):
    """Result of one spin of the wheel."""
    reward: RewardResponse
    claim: RewardClaimResponse
    remaining_tokens: int


# =============================================================================
# GAMIFICATION
# =============================================================================

class LeaderboardEntryResponse(BaseModel):
    rank: int
    user_id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None
    tokens: int
    order_count: int

    class Config:
        from_attributes = True


class BadgeResponse(BaseModel):
    id: str
    name: str
    description: str
    icon: str
    requirement: str

    class Config:
        from_attributes = True


class UserBadgeResponse(BaseModel):
    badge: BadgeResponse
    earned_at: datetime


class ChallengeResponse(BaseModel):
    id: str
    title: str
    description: str
    type: ChallengeType
    requirement: int
    reward_tokens: int

    class Config:
        from_attributes = True


class ChallengeProgressResponse(BaseModel):
    challenge_id: str
    title: str
    progress: int
    requirement: int
    completed: bool

    class Config:
        from_attributes = True


# =============================================================================
# GROUP ORDERS
# =============================================================================

class GroupOrderCreate(BaseModel):
    outlet_id: str
    name: str = Field(..., min_length=1, max_length=200, examples=["CS Class Lunch"])


class GroupOrderResponse(BaseModel):
    id: str
    creator_id: str
    outlet_id: str
    name: str
    status: GroupOrderStatus
    total_amount: int
    share_link: str
    created_at: datetime
    closed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class GroupOrderDetailResponse(GroupOrderResponse):
    orders: List[OrderResponse] = []


# =============================================================================
# SYSTEM
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    redis: str
    realtime_service: str
    timestamp: datetime
