"""
Efficiency and budget calculations.

Efficiency is actual hours as a percentage of declarable (budgeted) hours:
100 means on budget, below 100 is under budget, above 100 is over. Currency
projections are derived from live hour totals every time and never stored.
"""
from typing import Optional

from timekeeper.models.hierarchy import Deliverable, Phase, Project
from timekeeper.models.report import BudgetProjection, EfficiencyReport, EfficiencyZone


# Upper bounds (inclusive) of each zone, in percent
VERY_EFFICIENT_MAX = 80
ON_BUDGET_MAX = 100
SLIGHTLY_OVER_MAX = 120


def efficiency(actual_hours: float, declarable_hours: float) -> Optional[float]:
    """Actual / declarable * 100, or None when nothing was budgeted."""
    if not declarable_hours:
        return None
    return actual_hours / declarable_hours * 100


def efficiency_zone(value: Optional[float]) -> EfficiencyZone:
    if value is None:
        return EfficiencyZone.UNDEFINED
    if value == 0:
        return EfficiencyZone.NOT_STARTED
    if value <= VERY_EFFICIENT_MAX:
        return EfficiencyZone.VERY_EFFICIENT
    if value <= ON_BUDGET_MAX:
        return EfficiencyZone.ON_BUDGET
    if value <= SLIGHTLY_OVER_MAX:
        return EfficiencyZone.SLIGHTLY_OVER
    return EfficiencyZone.OVER_BUDGET


def format_efficiency(value: Optional[float]) -> str:
    if value is None:
        return "N/A"
    if value == 0:
        return "0%"
    if value < 0.01:
        return "<0.01%"
    if value < 1:
        return f"{value:.2f}%"
    return f"{round(value)}%"


def hourly_rate(project: Project) -> Optional[float]:
    """Explicit rate, else contract value spread over the budgeted hours."""
    if project.hourly_rate:
        return project.hourly_rate
    if project.project_value and project.total_hours:
        return project.project_value / project.total_hours
    return None


def projection(declarable_hours: float, actual_hours: float, rate: Optional[float]) -> Optional[BudgetProjection]:
    if rate is None:
        return None
    declarable_value = declarable_hours * rate
    actual_value = actual_hours * rate
    return BudgetProjection(
        hourly_rate=rate,
        declarable_value=round(declarable_value, 2),
        actual_value=round(actual_value, 2),
        variance=round(declarable_value - actual_value, 2),
    )


def deliverable_declarable_hours(deliverable: Deliverable) -> float:
    return deliverable.declarable_hours or 0


def phase_declarable_hours(phase: Phase, deliverables: list[Deliverable]) -> float:
    """The phase's own budget if it has one, else the sum of its deliverables."""
    if phase.declarable_hours:
        return phase.declarable_hours
    return sum(deliverable_declarable_hours(d) for d in deliverables)


def project_declarable_hours(project: Project, deliverables: list[Deliverable]) -> float:
    if project.total_hours:
        return project.total_hours
    return sum(deliverable_declarable_hours(d) for d in deliverables)


def efficiency_report(
    actual_hours: float,
    declarable_hours: float,
    rate: Optional[float] = None,
) -> EfficiencyReport:
    """Bundle the ratio, its zone and the currency projection."""
    value = efficiency(actual_hours, declarable_hours)
    return EfficiencyReport(
        declarable_hours=declarable_hours,
        actual_hours=round(actual_hours, 2),
        efficiency=round(value, 2) if value is not None else None,
        formatted=format_efficiency(value),
        zone=efficiency_zone(value),
        projection=projection(declarable_hours, actual_hours, rate),
    )
