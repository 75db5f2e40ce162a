"""
                        Services Module

Contains the business logic behind the API routes.

Services:
    - orders: order creation and the status workflow
    - pickup: pickup-code verification and completion
    - chill: outlet load throttling (chill periods)
    - ledger: token balances and order ratings
    - rewards: the token-funded reward wheel
    - gamification: leaderboard, badges and challenges
    - group_orders: shareable group orders
    - catalog: universities, outlets, menus and dish rankings
    - users: one-time university selection
    - notifications: realtime push (Mock in development, WebSocket otherwise)
"""

from campus_eats.services.catalog import CatalogService
from campus_eats.services.chill import ChillPeriodThrottle
from campus_eats.services.gamification import GamificationService
from campus_eats.services.group_orders import GroupOrderService
from campus_eats.services.ledger import TokenLedger
from campus_eats.services.orders import LineItem, OrderLifecycleManager
from campus_eats.services.pickup import PickupVerifier
from campus_eats.services.rewards import RewardWheel, select_reward
from campus_eats.services.users import UserService

__all__ = [
    "CatalogService",
    "ChillPeriodThrottle",
    "GamificationService",
    "GroupOrderService",
    "LineItem",
    "OrderLifecycleManager",
    "PickupVerifier",
    "RewardWheel",
    "TokenLedger",
    "UserService",
    "select_reward",
]
