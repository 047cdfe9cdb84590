"""Inherent risk scoring - presentation input only, never consulted by the workflow."""
from riskreg.models.enums import RiskBand

SCALE = range(1, 6)


def inherent_score(likelihood: int, impact: int) -> int:
    """likelihood x impact, both on a 1-5 scale."""
    if likelihood not in SCALE or impact not in SCALE:
        raise ValueError(f"Likelihood and impact must be between 1 and 5 (got {likelihood}, {impact})")
    return likelihood * impact


def risk_band(score: int) -> RiskBand:
    if score >= 20:
        return RiskBand.CRITICAL
    if score >= 12:
        return RiskBand.HIGH
    if score >= 6:
        return RiskBand.MEDIUM
    return RiskBand.LOW
