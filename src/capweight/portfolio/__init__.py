"""Allocation ranking and balance valuation."""

from .allocation import rank_allocations
from .balance import Allocation, Balance, Holding, PriceSource, aggregate_balance

__all__ = [
    "Allocation",
    "Balance",
    "Holding",
    "PriceSource",
    "aggregate_balance",
    "rank_allocations",
]
