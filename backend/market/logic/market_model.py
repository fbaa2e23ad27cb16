"""
Logit demand model: market shares and profits from one round's bids.

Each player's share is exp(-alpha * bid) normalised over every included
player, so lower prices capture more of the market. Profit is unit margin
times share times market size, with losses allowed.

Pure functions with no hidden state; results do not depend on the iteration
order of the bid mapping.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from market.logic.models import DEFAULT_ALPHA

if TYPE_CHECKING:
    from collections.abc import Mapping


def calculate_market_shares(bids: Mapping[str, float], alpha: float = DEFAULT_ALPHA) -> dict[str, float]:
    """Return each player's logit market share; shares sum to 1.

    Exponents are shifted by their maximum before exponentiation so widely
    spread bids cannot underflow every weight to zero.
    """
    if not bids:
        return {}
    exponents = {player_id: -alpha * bid for player_id, bid in bids.items()}
    peak = max(exponents.values())
    weights = {player_id: math.exp(exponent - peak) for player_id, exponent in exponents.items()}
    total = math.fsum(weights.values())
    return {player_id: weight / total for player_id, weight in weights.items()}


def calculate_profit(bid: float, market_share: float, cost_per_unit: float, market_size: float) -> float:
    return (bid - cost_per_unit) * market_share * market_size


def calculate_all_profits(
    bids: Mapping[str, float],
    market_shares: Mapping[str, float],
    cost_per_unit: float,
    market_size: float,
) -> dict[str, float]:
    return {
        player_id: calculate_profit(bid, market_shares[player_id], cost_per_unit, market_size)
        for player_id, bid in bids.items()
    }
