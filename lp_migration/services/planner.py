"""Migration plan construction — risk filtering, routing and step ordering."""
from __future__ import annotations

import logging
import math
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Sequence

from ..errors import InvalidPreferencesError
from ..models import (
    ADD_LIQUIDITY,
    AGGRESSIVE,
    CLAIM_FEES,
    CONSERVATIVE,
    HIGHLY_RECOMMENDED,
    MODERATE,
    NOT_RECOMMENDED,
    REASON_BETTER_APR,
    REASON_BETTER_FEES,
    REASON_CONSOLIDATION,
    REASON_HIGHER_LIQUIDITY,
    REASON_STRATEGY_CHANGE,
    RECOMMENDED,
    REMOVE_LIQUIDITY,
    RISK_HIGH,
    RISK_LOW,
    RISK_MEDIUM,
    RISK_TOLERANCES,
    CrossPoolOpportunity,
    MigrationPlan,
    MigrationPreferences,
    MigrationRoute,
    MigrationStep,
)
from ..step_graph import StepGraph

logger = logging.getLogger(__name__)

# (estimated gas, estimated seconds) per step type
STEP_ESTIMATES: dict[str, tuple[float, float]] = {
    CLAIM_FEES: (0.001, 30.0),
    REMOVE_LIQUIDITY: (0.002, 45.0),
    ADD_LIQUIDITY: (0.002, 45.0),
}

_RISK_RANK = {RISK_LOW: 0, RISK_MEDIUM: 1, RISK_HIGH: 2}


def validate_preferences(preferences: MigrationPreferences) -> None:
    """Raise InvalidPreferencesError before any plan is built."""
    if preferences.risk_tolerance not in RISK_TOLERANCES:
        raise InvalidPreferencesError(
            f"Unknown risk tolerance '{preferences.risk_tolerance}'"
        )
    max_gas = preferences.max_gas_cost
    if isinstance(max_gas, bool) or not isinstance(max_gas, (int, float)):
        raise InvalidPreferencesError("max_gas_cost must be a number")
    if math.isnan(max_gas) or max_gas < 0:
        raise InvalidPreferencesError(
            f"max_gas_cost must not be negative, got {max_gas}"
        )


def filter_by_risk(
    opportunities: Sequence[CrossPoolOpportunity], risk_tolerance: str
) -> list[CrossPoolOpportunity]:
    """Keep the opportunities a given tolerance accepts.

    Each tolerance accepts a superset of the stricter one.
    """
    if risk_tolerance == CONSERVATIVE:
        return [
            o for o in opportunities
            if o.recommendation == HIGHLY_RECOMMENDED
            and o.projected_benefit > o.migration_cost * 3
        ]
    if risk_tolerance == MODERATE:
        return [
            o for o in opportunities
            if o.recommendation in (HIGHLY_RECOMMENDED, RECOMMENDED)
        ]
    return [o for o in opportunities if o.recommendation != NOT_RECOMMENDED]


def migration_reason(opportunity: CrossPoolOpportunity) -> str:
    m = opportunity.improvement
    if m.apr_improvement > 15:
        return REASON_BETTER_APR
    if m.fee_improvement < -10:
        return REASON_BETTER_FEES
    if m.liquidity_improvement > 20:
        return REASON_HIGHER_LIQUIDITY
    return REASON_STRATEGY_CHANGE


def migration_confidence(opportunity: CrossPoolOpportunity) -> float:
    confidence = 0.5
    apr = opportunity.improvement.apr_improvement
    if apr > 20:
        confidence += 0.3
    elif apr > 10:
        confidence += 0.2
    elif apr > 5:
        confidence += 0.1

    if opportunity.projected_benefit > opportunity.migration_cost * 3:
        confidence += 0.2
    elif opportunity.projected_benefit > opportunity.migration_cost * 2:
        confidence += 0.1

    return min(confidence, 1.0)


def time_to_breakeven(cost: float, benefit: float) -> float:
    """Days until accrued benefit pays back the migration cost."""
    if cost <= 0 or benefit <= 0:
        return 0.0
    return cost / (benefit / 365.0)


def plan_risk_level(
    opportunities: Sequence[CrossPoolOpportunity], risk_tolerance: str
) -> str:
    if not opportunities:
        return RISK_LOW

    total_value = sum(o.position.liquidity_amount for o in opportunities)
    total_cost = sum(o.migration_cost for o in opportunities)
    cost_ratio = total_cost / total_value if total_value > 0 else 0.0

    if risk_tolerance == AGGRESSIVE or cost_ratio > 0.05:
        level = RISK_HIGH
    elif risk_tolerance == MODERATE or cost_ratio > 0.02:
        level = RISK_MEDIUM
    else:
        level = RISK_LOW

    if risk_tolerance == CONSERVATIVE and _RISK_RANK[level] > _RISK_RANK[RISK_MEDIUM]:
        level = RISK_MEDIUM
    return level


def _route_gas(group: Sequence[CrossPoolOpportunity]) -> float:
    per_position = STEP_ESTIMATES[CLAIM_FEES][0] + STEP_ESTIMATES[REMOVE_LIQUIDITY][0]
    return per_position * len(group) + STEP_ESTIMATES[ADD_LIQUIDITY][0]


class PlanBuilder:
    """Compile accepted opportunities into an executable migration plan."""

    def _best_per_position(
        self, opportunities: Sequence[CrossPoolOpportunity]
    ) -> list[CrossPoolOpportunity]:
        """A position can only move once; keep its highest-benefit opportunity."""
        best: dict[str, CrossPoolOpportunity] = {}
        for o in opportunities:
            current = best.get(o.position.id)
            if current is None or o.projected_benefit > current.projected_benefit:
                best[o.position.id] = o
        return sorted(best.values(), key=lambda o: o.projected_benefit, reverse=True)

    def _group(
        self, opportunities: list[CrossPoolOpportunity], consolidate: bool
    ) -> list[list[CrossPoolOpportunity]]:
        if not consolidate:
            return [[o] for o in opportunities]

        grouped: dict[str, list[CrossPoolOpportunity]] = {}
        for o in opportunities:
            grouped.setdefault(o.target_pool, []).append(o)
        groups = list(grouped.values())
        groups.sort(key=lambda g: sum(o.projected_benefit for o in g), reverse=True)
        return groups

    def _apply_gas_budget(
        self, groups: list[list[CrossPoolOpportunity]], max_gas_cost: float
    ) -> list[list[CrossPoolOpportunity]]:
        admitted: list[list[CrossPoolOpportunity]] = []
        spent = 0.0
        for group in groups:
            gas = _route_gas(group)
            if spent + gas > max_gas_cost + 1e-12:
                logger.info(
                    "Dropping route to %s: gas %.4f exceeds remaining budget %.4f",
                    group[0].target_pool, gas, max_gas_cost - spent,
                )
                continue
            spent += gas
            admitted.append(group)
        return admitted

    def _make_route(self, group: list[CrossPoolOpportunity]) -> MigrationRoute:
        position_ids = tuple(o.position.id for o in group)
        from_pools = tuple(dict.fromkeys(o.position.pool_address for o in group))
        from_pairs = tuple(dict.fromkeys(o.position.pair for o in group))
        to_pool = group[0].target_pool
        cost = sum(o.migration_cost for o in group)
        benefit = sum(o.projected_benefit for o in group)

        return MigrationRoute(
            id=f"route-{'+'.join(position_ids)}-{to_pool}",
            position_ids=position_ids,
            from_pools=from_pools,
            to_pool=to_pool,
            from_pair=", ".join(from_pairs),
            to_pair=group[0].target_pair,
            reason=REASON_CONSOLIDATION if len(group) > 1 else migration_reason(group[0]),
            estimated_cost=cost,
            estimated_benefit=benefit,
            time_to_breakeven=time_to_breakeven(cost, benefit),
            confidence=sum(migration_confidence(o) for o in group) / len(group),
        )

    def _add_route_steps(
        self,
        graph: StepGraph[MigrationStep],
        route: MigrationRoute,
        group: list[CrossPoolOpportunity],
    ) -> None:
        remove_ids: list[str] = []
        for o in group:
            position = o.position
            claim_id = f"claim-{position.id}"
            remove_id = f"remove-{position.id}"

            gas, secs = STEP_ESTIMATES[CLAIM_FEES]
            graph.add(
                claim_id,
                MigrationStep(
                    id=claim_id,
                    order=0,
                    type=CLAIM_FEES,
                    description=f"Claim pending fees from {position.pair}",
                    pool_address=position.pool_address,
                    estimated_gas=gas,
                    estimated_time=secs,
                    route_id=route.id,
                    position_ids=(position.id,),
                ),
                weight=secs,
            )

            gas, secs = STEP_ESTIMATES[REMOVE_LIQUIDITY]
            graph.add(
                remove_id,
                MigrationStep(
                    id=remove_id,
                    order=0,
                    type=REMOVE_LIQUIDITY,
                    description=f"Remove liquidity from {position.pair}",
                    pool_address=position.pool_address,
                    estimated_gas=gas,
                    estimated_time=secs,
                    dependencies=(claim_id,),
                    route_id=route.id,
                    position_ids=(position.id,),
                ),
                weight=secs,
                depends_on=(claim_id,),
            )
            remove_ids.append(remove_id)

        add_id = f"add-{'+'.join(route.position_ids)}-{route.to_pool}"
        gas, secs = STEP_ESTIMATES[ADD_LIQUIDITY]
        graph.add(
            add_id,
            MigrationStep(
                id=add_id,
                order=0,
                type=ADD_LIQUIDITY,
                description=f"Add liquidity to {route.to_pair}",
                pool_address=route.to_pool,
                estimated_gas=gas,
                estimated_time=secs,
                dependencies=tuple(remove_ids),
                route_id=route.id,
                position_ids=route.position_ids,
            ),
            weight=secs,
            depends_on=remove_ids,
        )

    def _ordered_steps(
        self, graph: StepGraph[MigrationStep], prioritize_speed: bool
    ) -> tuple[MigrationStep, ...]:
        if prioritize_speed:
            depths = graph.depths()
            order = graph.topological_order(
                lambda i: (depths[i], graph.payload(i).estimated_time, i)
            )
        else:
            order = graph.topological_order()

        return tuple(
            replace(graph.payload(idx), order=n)
            for n, idx in enumerate(order, start=1)
        )

    def build(
        self,
        opportunities: Sequence[CrossPoolOpportunity],
        user_address: str,
        preferences: MigrationPreferences,
    ) -> MigrationPlan:
        """Build a plan for ``user_address``; empty input yields an empty plan."""
        validate_preferences(preferences)
        logger.info("Creating migration plan for %d opportunities", len(opportunities))

        eligible = [o for o in opportunities if o.recommendation != NOT_RECOMMENDED]
        filtered = filter_by_risk(eligible, preferences.risk_tolerance)
        selected = self._best_per_position(filtered)
        groups = self._group(selected, preferences.consolidate_positions)
        groups = self._apply_gas_budget(groups, preferences.max_gas_cost)

        graph: StepGraph[MigrationStep] = StepGraph()
        routes: list[MigrationRoute] = []
        for group in groups:
            route = self._make_route(group)
            routes.append(route)
            self._add_route_steps(graph, route, group)

        steps = self._ordered_steps(graph, preferences.prioritize_speed)
        included = [o for group in groups for o in group]

        now = datetime.now(timezone.utc)
        plan = MigrationPlan(
            id=f"plan-{uuid.uuid4().hex[:12]}",
            name=f"Migration Plan - {now.strftime('%Y-%m-%d')}",
            description=(
                f"Migrating {len(included)} positions for improved performance"
                f" on behalf of {user_address}"
            ),
            positions=tuple(o.position for o in included),
            routes=tuple(routes),
            total_cost=sum(r.estimated_cost for r in routes),
            total_benefit=sum(r.estimated_benefit for r in routes),
            estimated_duration=graph.critical_path() / 60.0,
            risk_level=plan_risk_level(included, preferences.risk_tolerance),
            steps=steps,
            created_at=now,
        )

        logger.info(
            "Migration plan %s created: %d routes, %d steps, cost %.2f, benefit %.2f, risk %s",
            plan.id, len(routes), len(steps), plan.total_cost, plan.total_benefit,
            plan.risk_level,
        )
        return plan
