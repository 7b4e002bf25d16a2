"""
Position Sizer: confidence + capital + contract economics -> PositionSizing.

Confidence-tiered allocation. A qualifying signal is never zeroed out on
capital alone: it falls back to a single lot and reports the shortfall.
"""

from __future__ import annotations

import math

from config.engine_config import SizingConfig
from trade_core.contracts import PositionSizing


def effective_multiplier(lot_size: int, multiplier: float) -> float:
    """Contract multiplier when it is meaningful (> 1), else the lot size."""
    return multiplier if multiplier and multiplier > 1 else lot_size


def allocation_pct(confidence: float, config: SizingConfig | None = None) -> float:
    config = config or SizingConfig()
    if confidence > config.high_confidence_gt:
        return config.high_alloc_pct
    return config.standard_alloc_pct


def compute_lot_sizing(
    confidence: float,
    capital: float,
    premium: float,
    lot_size: int,
    multiplier: float = 1.0,
    config: SizingConfig | None = None,
) -> PositionSizing:
    """Size a position.

    Parameters
    ----------
    confidence:
        Signal confidence on a 0-100 scale.
    capital:
        Wallet capital read for this decision.
    premium:
        Instrument price per unit.
    lot_size, multiplier:
        Contract economics. cost_per_lot = premium × effective multiplier.
    config:
        Tier thresholds and allocation fractions.

    Returns
    -------
    PositionSizing
        ``disabled`` below the confidence floor; ``insufficient_funds`` with
        one lot and ``credit_amount = cost_per_lot - capital`` when the
        allocation cannot buy a whole lot.
    """
    config = config or SizingConfig()
    lot_size = max(1, int(lot_size or 1))

    if confidence < config.min_confidence:
        return PositionSizing(
            lots=0,
            quantity=0,
            disabled=True,
            insufficient_funds=False,
            credit_amount=0.0,
            alloc_pct=0.0,
        )

    alloc_pct = allocation_pct(confidence, config)
    allocated = capital * alloc_pct
    cost_per_lot = premium * effective_multiplier(lot_size, multiplier)

    if cost_per_lot <= 0:
        return PositionSizing(
            lots=1,
            quantity=lot_size,
            disabled=False,
            insufficient_funds=False,
            credit_amount=0.0,
            alloc_pct=alloc_pct,
            cost_per_lot=cost_per_lot,
            allocated_capital=allocated,
        )

    lots = math.floor(allocated / cost_per_lot)
    insufficient = False
    credit = 0.0
    if lots < 1:
        lots = 1
        insufficient = True
        credit = round(cost_per_lot - capital, 2)

    return PositionSizing(
        lots=lots,
        quantity=lots * lot_size,
        disabled=False,
        insufficient_funds=insufficient,
        credit_amount=credit,
        alloc_pct=alloc_pct,
        cost_per_lot=round(cost_per_lot, 2),
        allocated_capital=round(allocated, 2),
    )
