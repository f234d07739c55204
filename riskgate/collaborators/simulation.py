"""
Impact Simulation Module.

Lightweight heuristic forward simulation of a proposed action:
- real-world task impact (resource criticality, intent clarity)
- predictive synergy density (permission and layer integration, plus noise)
- trust-weighted propagation (delegation chain vs. policy exposure)
- cooperative intelligence evolution (synergy, stability, impactful perms)

The heuristic coefficients live in SimulationAssumptions and are tuned by
historical feedback through apply_assumption_deltas().
"""

import random
import threading
from dataclasses import asdict, dataclass, replace
from typing import Mapping, Optional

import structlog

from riskgate.engine.dimensions import clamp, clamp01, is_finite_number
from riskgate.schemas.decision import Criticality, DecisionObject

logger = structlog.get_logger(__name__)

# ── Configuration ─────────────────────────────────────────────────────────

MIN_ASSUMPTION_LEARNING_RATE: float = 0.01
MAX_ASSUMPTION_LEARNING_RATE: float = 0.5
DELEGATION_TRUST_STEP: float = 0.1
EXCESSIVE_RESOURCE_TOTAL: float = 1000.0
IMPACTFUL_PERMISSIONS: frozenset[str] = frozenset({"WRITE", "ADMIN", "EXECUTE"})

CRITICALITY_TASK_FACTORS: dict[Criticality, float] = {
    Criticality.HIGH: 1.0,
    Criticality.MEDIUM: 0.5,
    Criticality.LOW: 0.1,
}


@dataclass(frozen=True)
class SimulationAssumptions:
    task_criticality_weight: float = 0.6
    task_intent_clarity_weight: float = 0.4
    excessive_resource_penalty: float = 0.3
    synergy_permission_weight: float = 0.1
    synergy_layer_weight: float = 0.2
    trust_base: float = 0.5
    trust_policy_exposure_penalty_weight: float = 0.2
    intelligence_synergy_weight: float = 0.5
    intelligence_stability_weight: float = 0.5
    impactful_permission_boost: float = 0.2
    noise_amplitude: float = 0.1


ASSUMPTION_BOUNDS: dict[str, tuple[float, float]] = {
    "task_criticality_weight": (0.0, 1.0),
    "task_intent_clarity_weight": (0.0, 1.0),
    "excessive_resource_penalty": (0.0, 1.0),
    "synergy_permission_weight": (0.0, 0.5),
    "synergy_layer_weight": (0.0, 0.5),
    "trust_base": (0.0, 1.0),
    "trust_policy_exposure_penalty_weight": (0.0, 1.0),
    "intelligence_synergy_weight": (0.0, 1.0),
    "intelligence_stability_weight": (0.0, 1.0),
    "impactful_permission_boost": (0.0, 1.0),
    "noise_amplitude": (0.0, 0.3),
}


@dataclass(frozen=True)
class SimulationResult:
    real_world_task_impact: float
    predictive_synergy_density: float
    trust_weighted_propagation: float
    cooperative_intelligence_evolution: float


class ImpactSimulationModule:
    """Heuristic simulator with feedback-tunable assumptions."""

    def __init__(
        self,
        assumptions: Optional[SimulationAssumptions] = None,
        seed: Optional[int] = None,
    ):
        self._assumptions = assumptions or SimulationAssumptions()
        self._rng = random.Random(seed)
        self._lock = threading.RLock()

    def get_assumptions(self) -> SimulationAssumptions:
        with self._lock:
            return self._assumptions

    def simulate(self, decision: DecisionObject) -> SimulationResult:
        with self._lock:
            a = self._assumptions
            noise = (self._rng.random() * 2 - 1) * a.noise_amplitude

        synergy = self._synergy(decision, a, noise)
        return SimulationResult(
            real_world_task_impact=self._task_impact(decision, a),
            predictive_synergy_density=synergy,
            trust_weighted_propagation=self._trust_propagation(decision, a),
            cooperative_intelligence_evolution=self._intelligence_evolution(decision, a, synergy),
        )

    def apply_assumption_deltas(
        self,
        deltas: Mapping[str, float],
        learning_rate: float = 0.2,
    ) -> SimulationAssumptions:
        """assumption += delta * learning_rate, each bounded to its range."""
        lr = clamp(learning_rate, MIN_ASSUMPTION_LEARNING_RATE, MAX_ASSUMPTION_LEARNING_RATE)
        with self._lock:
            current = asdict(self._assumptions)
            for name, delta in deltas.items():
                if name not in ASSUMPTION_BOUNDS or not is_finite_number(delta):
                    continue
                lower, upper = ASSUMPTION_BOUNDS[name]
                current[name] = clamp(current[name] + delta * lr, lower, upper)
            self._assumptions = replace(self._assumptions, **current)
            updated = self._assumptions

        logger.info("simulation_assumptions_updated", learning_rate=lr, **asdict(updated))
        return updated

    # ── Heuristics ────────────────────────────────────────────────────

    @staticmethod
    def _task_impact(decision: DecisionObject, a: SimulationAssumptions) -> float:
        resources = decision.required_resources
        total = sum(r.amount for r in resources)
        avg_criticality = (
            sum(CRITICALITY_TASK_FACTORS.get(r.criticality, 0.1) for r in resources) / len(resources)
            if resources else 0.5
        )
        intent_clarity = 0.8 if len(decision.intent) > 20 else 0.4
        impact = avg_criticality * a.task_criticality_weight + intent_clarity * a.task_intent_clarity_weight
        if total > EXCESSIVE_RESOURCE_TOTAL and intent_clarity < 0.5:
            impact -= a.excessive_resource_penalty
        return clamp(impact, -1.0, 1.0)

    @staticmethod
    def _synergy(decision: DecisionObject, a: SimulationAssumptions, noise: float) -> float:
        permissions = len(decision.authority_scope.permissions)
        layers = 1 if decision.authority_scope.layer else 0
        synergy = permissions * a.synergy_permission_weight + layers * a.synergy_layer_weight
        return clamp01(synergy + noise)

    @staticmethod
    def _trust_propagation(decision: DecisionObject, a: SimulationAssumptions) -> float:
        delegation = len(decision.authority_scope.delegation_chain)
        exposure = sum(p.exposure_level for p in decision.policy_exposure)
        propagation = (
            a.trust_base
            + delegation * DELEGATION_TRUST_STEP
            - exposure * a.trust_policy_exposure_penalty_weight
        )
        return clamp(propagation, -1.0, 1.0)

    @staticmethod
    def _intelligence_evolution(
        decision: DecisionObject,
        a: SimulationAssumptions,
        synergy: float,
    ) -> float:
        stability = decision.projected_impact.system_stability_score
        evolution = synergy * a.intelligence_synergy_weight + stability * a.intelligence_stability_weight
        if any(p.upper() in IMPACTFUL_PERMISSIONS for p in decision.authority_scope.permissions):
            evolution *= 1 + a.impactful_permission_boost
        return clamp(evolution, -1.0, 1.0)
