"""Plan resolution: map partial sizing input onto the provider catalog.

Resolution order:
  1. explicit plan name -> exact match, or ``PlanNotFound``
  2. cpu and memory both positive -> exact core/memory match, else custom sizing
  3. neither cpu nor memory set -> the default plan, else custom sizing
  4. anything else -> custom sizing

Custom sizing carries no plan; the caller sends its own cpu/memory values.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from ..errors import PlanNotFoundError
from ..protocols import ServerService
from ..settings import BuilderSettings
from .models import ZERO_PLAN, Plan, PlanCatalog

DEFAULT_PLAN_NAME = '1xCPU-1GB'


@dataclass(frozen=True, slots=True)
class NamedPlan:
    plan: Plan


@dataclass(frozen=True, slots=True)
class CustomSizing:
    """No catalog plan applies; size the server from explicit values."""

    @property
    def plan(self) -> Plan:
        return ZERO_PLAN


@dataclass(frozen=True, slots=True)
class PlanNotFound:
    name: str


PlanResolution = Union[NamedPlan, CustomSizing, PlanNotFound]


def resolve_plan(
    catalog: PlanCatalog,
    plan_name: str,
    cpu: int,
    memory: int,
) -> PlanResolution:
    """Pick a plan from ``catalog`` for the given user input."""
    if plan_name:
        for plan in catalog:
            if plan.name == plan_name:
                return NamedPlan(plan)
        return PlanNotFound(plan_name)

    if cpu > 0 and memory > 0:
        for plan in catalog:
            if plan.core_number == cpu and plan.memory_amount == memory:
                return NamedPlan(plan)
    elif cpu <= 0 and memory <= 0:
        for plan in catalog:
            if plan.name == DEFAULT_PLAN_NAME:
                return NamedPlan(plan)

    return CustomSizing()


async def fetch_plan(
    service: ServerService,
    settings: BuilderSettings,
) -> NamedPlan | CustomSizing:
    """Fetch the catalog once and resolve it against ``settings``.

    Raises:
        PlanNotFoundError: If ``settings.plan`` names an unknown plan.
    """
    catalog = await service.get_plans()
    resolution = resolve_plan(catalog, settings.plan, settings.cpu, settings.memory)
    if isinstance(resolution, PlanNotFound):
        raise PlanNotFoundError(resolution.name)
    return resolution


def coalesce_positive(fallback: int, override: int) -> int:
    """Return ``override`` when positive, otherwise ``fallback``."""
    if override > 0:
        return override
    return fallback
