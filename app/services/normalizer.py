"""
Coercion pass for model-generated journeys and edge cases.

The LLM's JSON is untrusted input.  Everything it returns goes through this
module before entering the typed domain model:

* unknown / missing enum values  → documented default
* missing or non-list arrays     → empty list
* missing ids                    → ``journey-<i>``, ``step-<i>-<j>``, ``edge-<i>``
* duplicate ids                  → suffixed with the item index
* non-object items               → dropped

Accepts raw dicts (camelCase or snake_case keys) or already-built pydantic
models, and always emits camelCase dicts, so running the pass on its own
output is a no-op.

Canonical edge case taxonomy
----------------------------
    missing_flow | inconsistency | ux_gap | logical_contradiction   (default ux_gap)

Categories from the business-flow prompt revision are folded in:

    business_logic_gap → logical_contradiction
    flow_inconsistency → inconsistency
    operational_gap    → missing_flow
"""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel

from app.models.schemas import (
    EdgeCase,
    EdgeCaseCategory,
    Priority,
    Severity,
    UserJourney,
)

logger = logging.getLogger(__name__)


VALID_PRIORITIES = frozenset(p.value for p in Priority)
VALID_SEVERITIES = frozenset(s.value for s in Severity)
VALID_CATEGORIES = frozenset(c.value for c in EdgeCaseCategory)

DEFAULT_PRIORITY = Priority.MEDIUM.value
DEFAULT_SEVERITY = Severity.MODERATE.value
DEFAULT_CATEGORY = EdgeCaseCategory.UX_GAP.value

CATEGORY_ALIASES: Dict[str, str] = {
    "business_logic_gap": EdgeCaseCategory.LOGICAL_CONTRADICTION.value,
    "flow_inconsistency": EdgeCaseCategory.INCONSISTENCY.value,
    "operational_gap": EdgeCaseCategory.MISSING_FLOW.value,
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def normalize_journeys(raw: Any) -> List[Dict[str, Any]]:
    """Coerce a raw journey list into well-formed camelCase dicts."""
    if not isinstance(raw, list):
        return []

    journeys: List[Dict[str, Any]] = []
    seen_ids: Set[str] = set()

    for index, item in enumerate(raw):
        item = _as_dict(item)
        if item is None:
            logger.debug("normalize_journeys: dropped non-object item at %d", index)
            continue

        raw_steps = _get(item, "steps")
        steps: List[Dict[str, Any]] = []
        if isinstance(raw_steps, list):
            step_ids: Set[str] = set()
            for step_index, step in enumerate(raw_steps):
                step = _as_dict(step)
                if step is None:
                    continue
                steps.append(_normalize_step(step, index, step_index, step_ids))

        journeys.append({
            "id": _unique_id(_text(_get(item, "id"), f"journey-{index}"), index, seen_ids),
            "name": _text(_get(item, "name"), f"Journey {index + 1}"),
            "description": _text(_get(item, "description"), "No description provided"),
            "userType": _text(_get(item, "userType"), "User"),
            "priority": _enum(_get(item, "priority"), VALID_PRIORITIES, DEFAULT_PRIORITY),
            "steps": steps,
            "businessImpact": _optional_text(_get(item, "businessImpact")),
            "frequency": _optional_text(_get(item, "frequency")),
            "upstreamDependencies": _text_list(_get(item, "upstreamDependencies")),
            "parallelProcesses": _text_list(_get(item, "parallelProcesses")),
        })

    return journeys


def normalize_edge_cases(raw: Any) -> List[Dict[str, Any]]:
    """Coerce a raw edge case list into well-formed camelCase dicts."""
    if not isinstance(raw, list):
        return []

    edge_cases: List[Dict[str, Any]] = []
    seen_ids: Set[str] = set()

    for index, item in enumerate(raw):
        item = _as_dict(item)
        if item is None:
            logger.debug("normalize_edge_cases: dropped non-object item at %d", index)
            continue

        business_impact = _optional_text(_get(item, "businessImpact"))

        edge_cases.append({
            "id": _unique_id(_text(_get(item, "id"), f"edge-{index}"), index, seen_ids),
            "category": _category(_get(item, "category")),
            "severity": _enum(_get(item, "severity"), VALID_SEVERITIES, DEFAULT_SEVERITY),
            "title": _text(_get(item, "title"), f"Issue {index + 1}"),
            "description": _text(_get(item, "description"), "No description provided"),
            "affectedJourneys": _text_list(_get(item, "affectedJourneys")),
            "recommendation": _text(_get(item, "recommendation"), "No recommendation provided"),
            "impact": _text(_get(item, "impact"), business_impact or "Impact not specified"),
            "businessImpact": business_impact,
            "exampleScenario": _optional_text(_get(item, "exampleScenario")),
            "operationalFrequency": _optional_text(_get(item, "operationalFrequency")),
            "detectionMethod": _optional_text(_get(item, "detectionMethod")),
            "questionsToResolve": _text_list(_get(item, "questionsToResolve")),
        })

    return edge_cases


def to_journeys(raw: Any) -> List[UserJourney]:
    """Run the coercion pass and build UserJourney models."""
    return [UserJourney.model_validate(j) for j in normalize_journeys(raw)]


def to_edge_cases(raw: Any) -> List[EdgeCase]:
    """Run the coercion pass and build EdgeCase models."""
    return [EdgeCase.model_validate(e) for e in normalize_edge_cases(raw)]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _normalize_step(
    step: Dict[str, Any], journey_index: int, step_index: int, seen_ids: Set[str]
) -> Dict[str, Any]:
    return {
        "id": _unique_id(
            _text(_get(step, "id"), f"step-{journey_index}-{step_index}"),
            step_index,
            seen_ids,
        ),
        "action": _text(_get(step, "action"), f"Action {step_index + 1}"),
        "description": _text(_get(step, "description"), "No description provided"),
        "expectedOutcome": _text(
            _get(step, "expectedOutcome"), "Expected outcome not specified"
        ),
        "dependencies": _text_list(_get(step, "dependencies")),
        "timingConstraints": _optional_text(_get(step, "timingConstraints")),
        "dataRequirements": _optional_text(_get(step, "dataRequirements")),
        "failureScenarios": _text_list(_get(step, "failureScenarios")),
        "monitoringPoints": _text_list(_get(step, "monitoringPoints")),
    }


def _as_dict(item: Any) -> Optional[Dict[str, Any]]:
    if isinstance(item, BaseModel):
        return item.model_dump(by_alias=True, mode="json")
    if isinstance(item, dict):
        return item
    return None


def _snake(key: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower()


def _get(item: Dict[str, Any], key: str) -> Any:
    """Look up a camelCase key, falling back to its snake_case spelling."""
    if key in item:
        return item[key]
    return item.get(_snake(key))


def _optional_text(value: Any) -> Optional[str]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        value = str(value)
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def _text(value: Any, default: str) -> str:
    return _optional_text(value) or default


def _text_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    items = (_optional_text(v) for v in value)
    return [v for v in items if v]


def _enum(value: Any, valid: frozenset, default: str) -> str:
    if not isinstance(value, str):
        return default
    value = value.strip().lower()
    return value if value in valid else default


def _category(value: Any) -> str:
    if not isinstance(value, str):
        return DEFAULT_CATEGORY
    key = re.sub(r"[\s\-]+", "_", value.strip().lower())
    key = CATEGORY_ALIASES.get(key, key)
    return key if key in VALID_CATEGORIES else DEFAULT_CATEGORY


def _unique_id(candidate: str, index: int, seen: Set[str]) -> str:
    unique = candidate
    if unique in seen:
        unique = f"{candidate}-{index}"
        while unique in seen:
            unique = f"{unique}-{index}"
    seen.add(unique)
    return unique
