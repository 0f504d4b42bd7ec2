"""Health factor combination and risk classification across protocols."""

import math
from dataclasses import dataclass, field

from services.api.src.lending_api.domain.models import ProtocolPositions, RiskLevel

# Lower bounds of each risk band, checked in order
SAFE_THRESHOLD = 2.0
MODERATE_THRESHOLD = 1.5
RISKY_THRESHOLD = 1.1

# Fraction of collateral counted as borrowable headroom
BORROW_CAPACITY_RATIO = 0.8
LIQUIDATION_HEALTH_FACTOR = 1.0


def classify_risk(health_factor: float) -> RiskLevel:
    """
    Map a health factor to a risk band.

    >= 2.0 safe, >= 1.5 moderate, >= 1.1 risky, anything lower is danger.
    An infinite health factor (no debt) is safe.
    """
    if health_factor >= SAFE_THRESHOLD:
        return "safe"
    if health_factor >= MODERATE_THRESHOLD:
        return "moderate"
    if health_factor >= RISKY_THRESHOLD:
        return "risky"
    return "danger"


def available_to_borrow(collateral_usd: float, debt_usd: float) -> float:
    return collateral_usd * BORROW_CAPACITY_RATIO - debt_usd


@dataclass
class CombinedHealth:
    """A wallet's collateral and debt summed over every (chain, protocol)."""

    positions: list[ProtocolPositions] = field(default_factory=list)

    @property
    def collateral_usd(self) -> float:
        return sum(p.collateral_usd for p in self.positions)

    @property
    def liquidation_collateral_usd(self) -> float:
        """Total collateral * liquidation threshold (weighted per asset)."""
        return sum(p.liquidation_collateral_usd for p in self.positions)

    @property
    def debt_usd(self) -> float:
        return sum(p.debt_usd for p in self.positions)

    @property
    def health_factor(self) -> float:
        """
        HF = Σ(collateral_i × liquidationThreshold_i) / Σ(debt_j)

        Infinite when there is no debt.
        """
        if self.debt_usd == 0:
            return math.inf
        return self.liquidation_collateral_usd / self.debt_usd
