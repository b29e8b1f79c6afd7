"""Domain reactor: projections derived from processed events."""

from .models import OrderInfo, OrderState, OrderType, TokenInfo
from .reactor import DomainReactor, ProjectionReactor

__all__ = [
    "DomainReactor",
    "ProjectionReactor",
    "TokenInfo",
    "OrderInfo",
    "OrderState",
    "OrderType",
]
