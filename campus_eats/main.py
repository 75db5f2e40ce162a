"""
FastAPI Application Entry Point

Campus Eats - campus food-ordering marketplace backend.
Supports both Mock services (development) and real realtime push (staging/production).

Endpoints:
    - /api/auth/user, /api/universities: Account and one-time university selection
    - /api/orders: Order placement, history, status workflow and pickup
    - /api/outlets: Outlets, menus, outlet order queues and chill periods
    - /api/dishes: Trending and comfort-food rankings
    - /api/ratings, /api/tokens: Ratings and token balance
    - /api/rewards: Reward wheel spins and claims
    - /api/leaderboard, /api/badges, /api/challenges: Gamification
    - /api/group-orders: Shareable group orders
    - /ws: Realtime order events
    - GET /health: System health check

Version: 1.0.0
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import redis
from fastapi import Depends, FastAPI, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

# Windows-specific event loop policy
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Internal imports
from campus_eats.core.config import get_settings, setup_logging
from campus_eats.core.exceptions import CampusEatsError, InvalidTransitionError, NotFoundError
from campus_eats.database import engine, get_db, init_db
from campus_eats.dependencies import (
    get_current_user,
    get_order_manager,
    get_realtime_notifier,
    require_roles,
)
from campus_eats.models import Order, OrderStatus, User, UserRole
from campus_eats.schemas import (
    BadgeResponse,
    ChallengeProgressResponse,
    ChallengeResponse,
    ChillPeriodUpdate,
    ClaimWithRewardResponse,
    ComfortDishResponse,
    DishResponse,
    GroupOrderCreate,
    GroupOrderDetailResponse,
    GroupOrderResponse,
    HealthResponse,
    LeaderboardEntryResponse,
    OrderCreate,
    OrderDetailResponse,
    OrderHistoryEntry,
    OrderHistoryResponse,
    OrderItemResponse,
    OrderListResponse,
    OrderResponse,
    OrderStatusUpdate,
    OutletMenuResponse,
    OutletResponse,
    PickupVerificationResponse,
    RatingCreate,
    RatingResponse,
    RewardClaimResponse,
    RewardResponse,
    ScanRequest,
    SpinResponse,
    TokenBalanceResponse,
    UniversityResponse,
    UniversitySelect,
    UserBadgeResponse,
    UserResponse,
)
from campus_eats.services import (
    CatalogService,
    ChillPeriodThrottle,
    GamificationService,
    GroupOrderService,
    OrderLifecycleManager,
    PickupVerifier,
    RewardWheel,
    TokenLedger,
    UserService,
)
from campus_eats.services.access import ensure_can_manage_outlet
from campus_eats.services.notifications import BaseRealtimeNotifier, get_connection_registry
from campus_eats.services.orders import OrderItemView

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)

outlet_staff = require_roles(UserRole.OUTLET_OWNER, UserRole.APP_ADMIN)
outlet_owner = require_roles(UserRole.OUTLET_OWNER)


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"🚀 Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    # Initialize database
    await init_db()
    logger.info("✅ Database initialized")

    notifier = get_realtime_notifier()
    logger.info(f"✅ Realtime Service: {notifier.provider_name}")

    # Validate production config
    if settings.use_real_services:
        problems = settings.validate_production_config()
        if problems:
            logger.warning(f"⚠️ Unsafe production config: {problems}")

    logger.info("=" * 60)
    logger.info("✅ Application ready!")
    logger.info("=" * 60)

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    await engine.dispose()
    logger.info("✅ Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Campus food-ordering backend: order lifecycle with outlet load "
        "throttling, QR pickup, and a token reward economy."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def order_detail(order: Order, items: list[OrderItemView]) -> OrderDetailResponse:
    """Order plus its line items."""
    return OrderDetailResponse(
        **OrderResponse.model_validate(order).model_dump(),
        items=[OrderItemResponse.model_validate(item) for item in items],
    )


async def load_visible_order(
    order_id: str,
    user: User,
    manager: OrderLifecycleManager,
) -> Order:
    """Fetch an order the user placed or whose outlet they manage."""
    order = await manager.get_order(order_id)
    if order.user_id != user.id:
        outlet = await CatalogService(manager.db).get_outlet(order.outlet_id)
        ensure_can_manage_outlet(user, outlet)
    return order


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"🍔 Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
        "realtime": "/ws",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    db: AsyncSession = Depends(get_db),
    notifier: BaseRealtimeNotifier = Depends(get_realtime_notifier),
) -> HealthResponse:
    """Verify all system components are operational."""

    # Check database
    db_status = "healthy"
    try:
        await db.execute(select(func.now()))
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    # Check Redis
    redis_status = "healthy"
    try:
        r = redis.Redis.from_url(settings.redis_url, socket_timeout=2)
        r.ping()
        r.close()
    except Exception as e:
        redis_status = f"unhealthy: {str(e)}"
        logger.error(f"Redis health check failed: {e}")

    # Check realtime service
    realtime_status = "healthy" if await notifier.health_check() else "unhealthy"

    overall = "operational" if all(
        s == "healthy" for s in [db_status, redis_status, realtime_status]
    ) else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        redis=redis_status,
        realtime_service=realtime_status,
        timestamp=datetime.now(timezone.utc),
    )


# =============================================================================
# ACCOUNT ENDPOINTS
# =============================================================================

@app.get(
    "/api/universities",
    response_model=list[UniversityResponse],
    tags=["Accounts"],
)
async def list_universities(db: AsyncSession = Depends(get_db)) -> list[UniversityResponse]:
    universities = await CatalogService(db).list_universities()
    return [UniversityResponse.model_validate(u) for u in universities]


@app.get(
    "/api/auth/user",
    response_model=UserResponse,
    tags=["Accounts"],
)
async def current_user(user: User = Depends(get_current_user)) -> UserResponse:
    return UserResponse.model_validate(user)


@app.patch(
    "/api/auth/user/university",
    response_model=UserResponse,
    tags=["Accounts"],
    summary="Select University",
)
async def select_university(
    selection: UniversitySelect,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    """
    Join a university. Students only, and only once.
    """
    updated = await UserService(db).select_university(user, selection.university_id)
    return UserResponse.model_validate(updated)


# =============================================================================
# ORDER ENDPOINTS
# =============================================================================

@app.post(
    "/api/orders",
    response_model=OrderDetailResponse,
    status_code=201,
    tags=["Orders"],
    summary="Place Order",
)
async def create_order(
    order_data: OrderCreate,
    user: User = Depends(get_current_user),
    manager: OrderLifecycleManager = Depends(get_order_manager),
) -> OrderDetailResponse:
    """
    Place an order at an outlet.

    Refused while the outlet is in a chill period. The outlet's owner is
    notified in realtime.
    """
    order = await manager.create_order(
        user_id=user.id,
        outlet_id=order_data.outlet_id,
        items=order_data.items,
        total_amount=order_data.total_amount,
        payment_method=order_data.payment_method,
        special_instructions=order_data.special_instructions,
        group_order_id=order_data.group_order_id,
    )
    return order_detail(order, await manager.get_order_items(order.id))


@app.get(
    "/api/orders",
    response_model=OrderHistoryResponse,
    tags=["Orders"],
    summary="My Orders",
)
async def list_my_orders(
    user: User = Depends(get_current_user),
    manager: OrderLifecycleManager = Depends(get_order_manager),
) -> OrderHistoryResponse:
    """The caller's orders, newest first."""
    summaries = await manager.list_user_orders(user.id)
    return OrderHistoryResponse(
        total=len(summaries),
        orders=[
            OrderHistoryEntry(
                **OrderResponse.model_validate(s.order).model_dump(),
                outlet_name=s.outlet_name,
                item_count=s.item_count,
            )
            for s in summaries
        ],
    )


@app.get(
    "/api/orders/verify/{code}",
    response_model=PickupVerificationResponse,
    tags=["Pickup"],
    summary="Look Up Order by Pickup Code",
)
async def verify_pickup_code(
    code: str,
    user: User = Depends(get_current_user),
    manager: OrderLifecycleManager = Depends(get_order_manager),
) -> PickupVerificationResponse:
    details = await PickupVerifier(manager.db, manager).verify_by_code(code, user)
    return PickupVerificationResponse(
        order=order_detail(details.order, details.items),
        outlet_id=details.outlet.id,
        outlet_name=details.outlet.name,
    )


@app.post(
    "/api/orders/scan-qr",
    response_model=OrderResponse,
    tags=["Pickup"],
    summary="Outlet Scans Pickup Code",
)
async def scan_pickup_code(
    scan: ScanRequest,
    user: User = Depends(outlet_staff),
    manager: OrderLifecycleManager = Depends(get_order_manager),
) -> OrderResponse:
    """Complete a ready order from the outlet counter."""
    order = await PickupVerifier(manager.db, manager).scan_by_outlet(scan.qr_code, scan.outlet_id, user)
    return OrderResponse.model_validate(order)


@app.get(
    "/api/orders/{order_id}",
    response_model=OrderDetailResponse,
    tags=["Orders"],
)
async def get_order(
    order_id: str,
    user: User = Depends(get_current_user),
    manager: OrderLifecycleManager = Depends(get_order_manager),
) -> OrderDetailResponse:
    """Get a specific order by ID."""
    order = await load_visible_order(order_id, user, manager)
    return order_detail(order, await manager.get_order_items(order.id))


@app.patch(
    "/api/orders/{order_id}/status",
    response_model=OrderResponse,
    tags=["Orders"],
    summary="Advance Order Status",
)
async def update_order_status(
    order_id: str,
    status_update: OrderStatusUpdate,
    user: User = Depends(outlet_staff),
    manager: OrderLifecycleManager = Depends(get_order_manager),
) -> OrderResponse:
    """
    Move an order along the workflow.

    Completion is only reachable through pickup verification.
    """
    order = await manager.get_order(order_id)
    outlet = await CatalogService(manager.db).get_outlet(order.outlet_id)
    ensure_can_manage_outlet(user, outlet)

    if status_update.status == OrderStatus.COMPLETED:
        raise InvalidTransitionError("Orders are completed through pickup verification")

    order = await manager.update_status(order_id, status_update.status)
    return OrderResponse.model_validate(order)


@app.post(
    "/api/orders/{order_id}/confirm-pickup",
    response_model=OrderResponse,
    tags=["Pickup"],
    summary="Student Confirms Pickup",
)
async def confirm_pickup(
    order_id: str,
    user: User = Depends(get_current_user),
    manager: OrderLifecycleManager = Depends(get_order_manager),
) -> OrderResponse:
    order = await PickupVerifier(manager.db, manager).confirm_pickup(order_id, user.id)
    return OrderResponse.model_validate(order)


# =============================================================================
# OUTLET & DISH ENDPOINTS
# =============================================================================

@app.get(
    "/api/outlets",
    response_model=list[OutletResponse],
    tags=["Outlets"],
)
async def list_outlets(
    university_id: Optional[str] = Query(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> list[OutletResponse]:
    """Outlets, scoped to the caller's university unless one is given."""
    scope = university_id or user.university_id
    outlets = await CatalogService(db).list_outlets(scope)
    return [OutletResponse.model_validate(o) for o in outlets]


@app.get(
    "/api/outlets/my",
    response_model=OutletResponse,
    tags=["Outlets"],
    summary="My Outlet",
)
async def my_outlet(
    user: User = Depends(outlet_owner),
    db: AsyncSession = Depends(get_db),
) -> OutletResponse:
    """The outlet run by the calling owner."""
    outlet = await CatalogService(db).get_owned_outlet(user.id)
    if outlet is None:
        raise NotFoundError(f"No outlet found for owner {user.id}")
    return OutletResponse.model_validate(outlet)


@app.get(
    "/api/outlets/{outlet_id}",
    response_model=OutletMenuResponse,
    tags=["Outlets"],
)
async def get_outlet(
    outlet_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> OutletMenuResponse:
    """Outlet with its menu."""
    catalog = CatalogService(db)
    outlet = await catalog.get_outlet(outlet_id)
    dishes = await catalog.list_dishes(outlet_id)
    return OutletMenuResponse(
        **OutletResponse.model_validate(outlet).model_dump(),
        dishes=[DishResponse.model_validate(d) for d in dishes],
    )


@app.get(
    "/api/outlets/{outlet_id}/orders",
    response_model=OrderListResponse,
    tags=["Outlets"],
    summary="Outlet Order Queue",
)
async def list_outlet_orders(
    outlet_id: str,
    status: Optional[OrderStatus] = Query(None),
    user: User = Depends(outlet_staff),
    manager: OrderLifecycleManager = Depends(get_order_manager),
) -> OrderListResponse:
    outlet = await CatalogService(manager.db).get_outlet(outlet_id)
    ensure_can_manage_outlet(user, outlet)

    orders = await manager.list_outlet_orders(outlet_id, status)
    return OrderListResponse(
        total=len(orders),
        orders=[OrderResponse.model_validate(o) for o in orders],
    )


@app.patch(
    "/api/outlets/{outlet_id}/chill-period",
    response_model=OutletResponse,
    tags=["Outlets"],
    summary="Pause or Resume Outlet",
)
async def update_chill_period(
    outlet_id: str,
    chill_update: ChillPeriodUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> OutletResponse:
    outlet = await ChillPeriodThrottle(db).set_chill_period(
        outlet_id,
        chill_update.is_active,
        user,
        duration_minutes=chill_update.duration_minutes,
    )
    return OutletResponse.model_validate(outlet)


@app.get(
    "/api/dishes/trending",
    response_model=list[DishResponse],
    tags=["Dishes"],
)
async def trending_dishes(
    limit: Optional[int] = Query(None, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> list[DishResponse]:
    dishes = await CatalogService(db).trending(limit)
    return [DishResponse.model_validate(d) for d in dishes]


@app.get(
    "/api/dishes/comfort",
    response_model=list[ComfortDishResponse],
    tags=["Dishes"],
)
async def comfort_food(
    limit: Optional[int] = Query(None, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> list[ComfortDishResponse]:
    """The caller's most-ordered dishes."""
    rows = await CatalogService(db).comfort_food(user.id, limit)
    return [ComfortDishResponse.model_validate(r) for r in rows]


# =============================================================================
# RATINGS & TOKENS
# =============================================================================

@app.post(
    "/api/ratings",
    response_model=RatingResponse,
    status_code=201,
    tags=["Ratings"],
)
async def submit_rating(
    rating_data: RatingCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> RatingResponse:
    """Rate a completed order; earns tokens once per order."""
    rating = await TokenLedger(db).submit_rating(
        user.id,
        rating_data.order_id,
        rating_data.rating,
        review=rating_data.review,
        dish_id=rating_data.dish_id,
    )
    return RatingResponse.model_validate(rating)


@app.get(
    "/api/tokens",
    response_model=TokenBalanceResponse,
    tags=["Ratings"],
)
async def token_balance(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> TokenBalanceResponse:
    return TokenBalanceResponse(user_id=user.id, tokens=await TokenLedger(db).balance(user.id))


# =============================================================================
# REWARD WHEEL
# =============================================================================

@app.get(
    "/api/rewards",
    response_model=list[RewardResponse],
    tags=["Rewards"],
)
async def list_rewards(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> list[RewardResponse]:
    rewards = await RewardWheel(db).list_rewards()
    return [RewardResponse.model_validate(r) for r in rewards]


@app.post(
    "/api/rewards/spin",
    response_model=SpinResponse,
    tags=["Rewards"],
    summary="Spin the Reward Wheel",
)
async def spin_wheel(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> SpinResponse:
    outcome = await RewardWheel(db).spin(user.id)
    return SpinResponse(
        reward=RewardResponse.model_validate(outcome.reward),
        claim=RewardClaimResponse.model_validate(outcome.claim),
        remaining_tokens=outcome.remaining_tokens,
    )


@app.get(
    "/api/rewards/claims",
    response_model=list[ClaimWithRewardResponse],
    tags=["Rewards"],
)
async def list_claims(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> list[ClaimWithRewardResponse]:
    claims = await RewardWheel(db).list_claims(user.id)
    return [
        ClaimWithRewardResponse(
            **RewardClaimResponse.model_validate(claim).model_dump(),
            reward=RewardResponse.model_validate(reward),
        )
        for claim, reward in claims
    ]


@app.post(
    "/api/rewards/claims/{claim_id}/use",
    response_model=RewardClaimResponse,
    tags=["Rewards"],
)
async def use_claim(
    claim_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> RewardClaimResponse:
    claim = await RewardWheel(db).use_claim(user.id, claim_id)
    return RewardClaimResponse.model_validate(claim)


# =============================================================================
# GAMIFICATION
# =============================================================================

@app.get(
    "/api/leaderboard",
    response_model=list[LeaderboardEntryResponse],
    tags=["Gamification"],
)
async def leaderboard(
    limit: Optional[int] = Query(None, ge=1, le=100),
    university_id: Optional[str] = Query(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> list[LeaderboardEntryResponse]:
    entries = await GamificationService(db).leaderboard(limit, university_id)
    return [LeaderboardEntryResponse.model_validate(e) for e in entries]


@app.get(
    "/api/badges",
    response_model=list[BadgeResponse],
    tags=["Gamification"],
)
async def list_badges(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> list[BadgeResponse]:
    badges = await GamificationService(db).list_badges()
    return [BadgeResponse.model_validate(b) for b in badges]


@app.get(
    "/api/badges/user",
    response_model=list[UserBadgeResponse],
    tags=["Gamification"],
)
async def list_my_badges(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> list[UserBadgeResponse]:
    earned = await GamificationService(db).list_user_badges(user.id)
    return [
        UserBadgeResponse(badge=BadgeResponse.model_validate(badge), earned_at=user_badge.earned_at)
        for user_badge, badge in earned
    ]


@app.get(
    "/api/challenges",
    response_model=list[ChallengeResponse],
    tags=["Gamification"],
)
async def list_challenges(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> list[ChallengeResponse]:
    challenges = await GamificationService(db).list_challenges()
    return [ChallengeResponse.model_validate(c) for c in challenges]


@app.get(
    "/api/challenges/progress",
    response_model=list[ChallengeProgressResponse],
    tags=["Gamification"],
)
async def challenge_progress(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> list[ChallengeProgressResponse]:
    progress = await GamificationService(db).challenge_progress(user.id)
    return [ChallengeProgressResponse.model_validate(p) for p in progress]


# =============================================================================
# GROUP ORDERS
# =============================================================================

@app.post(
    "/api/group-orders",
    response_model=GroupOrderResponse,
    status_code=201,
    tags=["Group Orders"],
)
async def create_group_order(
    group_data: GroupOrderCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> GroupOrderResponse:
    group = await GroupOrderService(db).create(user.id, group_data.outlet_id, group_data.name)
    return GroupOrderResponse.model_validate(group)


@app.get(
    "/api/group-orders/{share_link}",
    response_model=GroupOrderDetailResponse,
    tags=["Group Orders"],
)
async def get_group_order(
    share_link: str,
    db: AsyncSession = Depends(get_db),
) -> GroupOrderDetailResponse:
    """Public: anyone holding the link can see the group."""
    service = GroupOrderService(db)
    group = await service.get_by_link(share_link)
    orders = await service.list_orders(group.id)
    return GroupOrderDetailResponse(
        **GroupOrderResponse.model_validate(group).model_dump(),
        orders=[OrderResponse.model_validate(o) for o in orders],
    )


@app.post(
    "/api/group-orders/{group_order_id}/close",
    response_model=GroupOrderResponse,
    tags=["Group Orders"],
)
async def close_group_order(
    group_order_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> GroupOrderResponse:
    group = await GroupOrderService(db).close(group_order_id, user.id)
    return GroupOrderResponse.model_validate(group)


# =============================================================================
# REALTIME
# =============================================================================

@app.websocket("/ws")
async def realtime_socket(
    websocket: WebSocket,
    user_id: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> None:
    """
    Realtime order events.

    Outlet owners receive `new_order` for their outlet; every user receives
    `order_status_update` for their own orders. The server sends a `ping`
    whenever the client has been silent for the heartbeat interval.

    Events are pushed only when the WebSocket notifier is active, which is
    outside development mode. In development the mock notifier logs events
    instead, and connected clients receive only `connected` and `ping`.
    """
    user = await db.get(User, user_id) if user_id else None
    if user is None:
        await websocket.close(code=1008, reason="Unauthorized")
        return

    outlet_id = None
    if user.role == UserRole.OUTLET_OWNER:
        outlet = await CatalogService(db).get_owned_outlet(user.id)
        outlet_id = outlet.id if outlet else None

    await websocket.accept()
    registry = get_connection_registry()
    client = registry.register(websocket, user.id, user.role.value, outlet_id)

    try:
        await websocket.send_json({
            "type": "connected",
            "userId": user.id,
            "role": user.role.value,
            "outletId": outlet_id,
        })
        while True:
            try:
                await asyncio.wait_for(
                    websocket.receive_text(),
                    timeout=settings.websocket_heartbeat_seconds,
                )
            except asyncio.TimeoutError:
                await websocket.send_json({"type": "ping"})
    except WebSocketDisconnect:
        logger.debug(f"WebSocket closed by client {client.client_id}")
    finally:
        registry.unregister(client.client_id)


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(CampusEatsError)
async def domain_exception_handler(request: Request, exc: CampusEatsError) -> JSONResponse:
    """Translate domain errors into the standard error body."""
    logger.warning(
        f"{request.method} {request.url.path} → {exc.status_code} {exc.error}: {exc.message}"
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.error,
            "detail": exc.detail,
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )


# =============================================================================
# DEVELOPMENT SERVER
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "campus_eats.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
        log_level="debug" if settings.debug else "info",
    )
