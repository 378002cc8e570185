"""Quote-currency valuation of exchange holdings."""

import asyncio
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Protocol

from capweight.logging import get_logger
from capweight.models import Market

logger = get_logger(__name__)


class PriceSource(Protocol):
    """Anything that can price a market, e.g. an exchange client."""

    async def get_price(self, market: Market) -> Decimal | None:
        """Return the quote price of one base unit, or None if unknown."""
        ...


@dataclass(frozen=True)
class Holding:
    """Amount of an asset held, available plus in open orders."""

    base_symbol: str
    available: Decimal
    in_order: Decimal = Decimal(0)

    @property
    def amount(self) -> Decimal:
        return self.available + self.in_order


@dataclass(frozen=True)
class Allocation:
    market: Market
    price: Decimal
    amount: Decimal

    @property
    def value(self) -> Decimal:
        return self.price * self.amount


@dataclass
class Balance:
    """Valued holdings; assets that could not be priced are listed separately."""

    quote_symbol: str
    allocations: list[Allocation] = field(default_factory=list)
    unresolved: list[str] = field(default_factory=list)

    @property
    def total_value(self) -> Decimal:
        return sum((allocation.value for allocation in self.allocations), Decimal(0))

    @property
    def is_complete(self) -> bool:
        return not self.unresolved

    def get(self, base_symbol: str) -> Allocation | None:
        base_symbol = base_symbol.upper()
        for allocation in self.allocations:
            if allocation.market.base_symbol == base_symbol:
                return allocation
        return None


async def _price_holding(
    quote_symbol: str,
    holding: Holding,
    price_source: PriceSource,
) -> Allocation:
    market = Market(quote_symbol=quote_symbol, base_symbol=holding.base_symbol)
    if market.base_symbol == market.quote_symbol:
        price = Decimal(1)
    else:
        price = await price_source.get_price(market)
    if price is None:
        raise LookupError(f"No price for {market}")
    return Allocation(market=market, price=Decimal(price), amount=holding.amount)


async def aggregate_balance(
    quote_symbol: str,
    holdings: list[Holding],
    price_source: PriceSource,
) -> Balance:
    """Value every non-zero holding in ``quote_symbol``.

    One price lookup per asset is issued concurrently. A lookup that fails or
    returns None marks that asset unresolved instead of failing the balance.
    """
    quote_symbol = quote_symbol.strip().upper()
    held = [holding for holding in holdings if holding.amount > 0]

    results = await asyncio.gather(
        *(_price_holding(quote_symbol, holding, price_source) for holding in held),
        return_exceptions=True,
    )

    balance = Balance(quote_symbol=quote_symbol)
    for holding, result in zip(held, results, strict=True):
        if isinstance(result, Allocation):
            balance.allocations.append(result)
            continue
        if isinstance(result, BaseException) and not isinstance(result, Exception):
            raise result
        logger.warning(
            "Failed to get price of %s-%s: %s", holding.base_symbol.upper(), quote_symbol, result
        )
        balance.unresolved.append(holding.base_symbol.upper())

    return balance
