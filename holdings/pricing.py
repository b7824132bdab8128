"""
Holdings Price Chart
Stock price and shareholder bonuses by chain tier and size
"""

from holdings.models import HotelChain


def base_price_for_size(size: int) -> int:
    """Tier-1 price for a chain of the given size (0 below 2 tiles)"""
    if size <= 1:
        return 0
    if size <= 5:
        return size * 100
    if size <= 10:
        return 600
    if size <= 20:
        return 700
    if size <= 30:
        return 800
    if size <= 40:
        return 900
    return 1000


def stock_price(chain: HotelChain, size: int) -> int:
    """Price of one share; each tier above 1 adds 100"""
    if size <= 1:
        return 0
    return base_price_for_size(size) + (chain.tier - 1) * 100


def majority_bonus(chain: HotelChain, size: int) -> int:
    return stock_price(chain, size) * 10


def minority_bonus(chain: HotelChain, size: int) -> int:
    return stock_price(chain, size) * 5


def round_down(amount: int, increment: int) -> int:
    """Round a bonus share down to the bonus increment"""
    if increment <= 0:
        return amount
    return (amount // increment) * increment
