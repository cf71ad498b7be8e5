"""
Rule Engine - Drives findings from JSON rule definitions.

Design:
- Rules are loaded from JSON files, in file order (order is priority)
- Rules declare conditions against a flat signal context
- A triggered rule renders its static templates into a Finding
- New rules added without code changes
"""

from __future__ import annotations

import json
import operator
import re
from pathlib import Path
from typing import Any, Callable

import structlog
from pydantic import BaseModel, Field, ValidationError, field_validator

from app.engines.base import Finding, Severity

logger = structlog.get_logger(__name__)

DEFAULT_RULES_DIR = Path(__file__).parent.parent / "rules" / "definitions"

# ─────────────────────────────────────────────
# Rule Schema
# ─────────────────────────────────────────────

class RuleCondition(BaseModel):
    """A single condition to evaluate against the signal context."""
    field: str           # Dot-notation path: "viability_score", "robots.disallow_all", etc.
    operator: str        # eq, ne, lt, gt, lte, gte, is_true, is_false, in, not_in
    value: Any = None    # Expected value (None for is_true/is_false)


class Rule(BaseModel):
    """
    Complete rule definition loaded from JSON.
    Title, description and recommendation are str.format templates over the context.
    """
    id: str
    severity: Severity
    title: str
    description: str
    recommendation: str
    conditions: list[RuleCondition]
    condition_logic: str = "AND"  # AND | OR
    enabled: bool = True
    tags: list[str] = Field(default_factory=list)

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        if not re.match(r"^[a-z][a-z0-9_-]{2,63}$", v):
            raise ValueError(f"Rule ID '{v}' must be lowercase alphanumeric with hyphens/underscores")
        return v


# ─────────────────────────────────────────────
# Operator Registry
# ─────────────────────────────────────────────

OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "eq": operator.eq,
    "ne": operator.ne,
    "lt": operator.lt,
    "gt": operator.gt,
    "lte": operator.le,
    "gte": operator.ge,
    "is_true": lambda a, _: a is True,
    "is_false": lambda a, _: a is False,
    "in": lambda a, b: a in b if b else False,
    "not_in": lambda a, b: a not in b if b else True,
}


# ─────────────────────────────────────────────
# Data Accessor
# ─────────────────────────────────────────────

def get_nested_value(data: dict[str, Any], path: str) -> Any:
    """
    Extract a value from nested dict using dot notation.
    Example: get_nested_value(ctx, "robots.disallow_all") -> True
    """
    current: Any = data
    for key in path.split("."):
        if isinstance(current, dict):
            current = current.get(key)
        else:
            return None
    return current


# ─────────────────────────────────────────────
# Rule Evaluator
# ─────────────────────────────────────────────

class RuleEvaluator:
    """Evaluates rules against a signal context and renders findings."""

    def evaluate_condition(self, condition: RuleCondition, context: dict[str, Any]) -> bool:
        value = get_nested_value(context, condition.field)

        op_fn = OPERATORS.get(condition.operator)
        if op_fn is None:
            logger.warning("Unknown operator", operator=condition.operator)
            return False

        try:
            return op_fn(value, condition.value)
        except (TypeError, AttributeError) as e:
            logger.debug(
                "Condition evaluation error",
                field=condition.field,
                operator=condition.operator,
                value=value,
                error=str(e),
            )
            return False

    def evaluate_rule(self, rule: Rule, context: dict[str, Any]) -> bool:
        """
        Evaluate all conditions of a rule.
        Returns True if the rule triggers (i.e., an issue is detected).
        """
        results = [self.evaluate_condition(cond, context) for cond in rule.conditions]

        if rule.condition_logic == "AND":
            return all(results)
        elif rule.condition_logic == "OR":
            return any(results)
        return False

    def render(self, rule: Rule, context: dict[str, Any]) -> Finding:
        """Fill the rule's templates from the context."""
        return Finding(
            severity=rule.severity,
            title=rule.title.format_map(context),
            description=rule.description.format_map(context),
            recommendation=rule.recommendation.format_map(context),
        )


# ─────────────────────────────────────────────
# Rule Registry
# ─────────────────────────────────────────────

class RuleRegistry:
    """
    Loads and holds rule definitions in priority order.
    Files are read in name order; rules keep their order within each file.
    Loaded lazily on first access.
    """

    def __init__(self, rules_dir: Path = DEFAULT_RULES_DIR):
        self.rules_dir = rules_dir
        self._rules: dict[str, Rule] = {}
        self._loaded = False

    def load(self) -> None:
        """Load all rule JSON files from the rules directory."""
        self._rules = {}
        files = sorted(self.rules_dir.glob("**/*.json"))
        for json_file in files:
            try:
                with open(json_file) as f:
                    data = json.load(f)

                rules_data = data if isinstance(data, list) else [data]
                for rule_data in rules_data:
                    rule = Rule.model_validate(rule_data)
                    if rule.enabled:
                        self._rules[rule.id] = rule

            except (OSError, ValueError, ValidationError) as e:
                logger.error("Failed to load rule file", file=str(json_file), error=str(e))

        self._loaded = True
        logger.info("Rules loaded", total=len(self._rules), files=len(files))

    def get_by_id(self, rule_id: str) -> Rule | None:
        return self._all().get(rule_id)

    def get_all(self) -> list[Rule]:
        return list(self._all().values())

    def _all(self) -> dict[str, Rule]:
        if not self._loaded:
            self.load()
        return self._rules
