"""
Configuration Validation
========================

Schema rules checked against configuration groups after a filesystem
rebuild. Each rule targets a dot path inside one group:

    ConfigValidationRule(
        parameter="connections.mysql.port",
        rule_type="range",
        constraint=(1, 65535),
        error_message="Port must be between 1 and 65535",
    )

Rules at ``ValidationLevel.PERMISSIVE`` only produce warnings.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Tuple

from ..utils.config import get_nested_value, has_nested_value

logger = logging.getLogger(__name__)

RULE_TYPES = ("required", "type", "range", "choice", "regex", "custom")


class ValidationLevel(Enum):
    """Configuration validation strictness levels."""
    PERMISSIVE = "permissive"   # Warn but allow invalid values
    STRICT = "strict"           # Reject invalid configurations


@dataclass
class ConfigValidationRule:
    """Individual configuration validation rule."""
    parameter: str
    rule_type: str  # "required", "type", "range", "choice", "regex", "custom"
    constraint: Any = None
    error_message: str = ""
    level: ValidationLevel = ValidationLevel.STRICT

    def __post_init__(self):
        if self.rule_type not in RULE_TYPES:
            raise ValueError(
                f"Unknown rule type '{self.rule_type}' (expected one of {', '.join(RULE_TYPES)})"
            )
        if not self.error_message:
            self.error_message = f"'{self.parameter}' failed {self.rule_type} check"


def validate_parameter(value: Any, rule: ConfigValidationRule) -> bool:
    """Validate a present value against a single rule."""
    if rule.rule_type == "required":
        return True

    elif rule.rule_type == "range":
        min_val, max_val = rule.constraint
        try:
            if min_val is not None and value < min_val:
                return False
            if max_val is not None and value > max_val:
                return False
        except TypeError:
            return False
        return True

    elif rule.rule_type == "choice":
        return value in rule.constraint

    elif rule.rule_type == "type":
        return isinstance(value, rule.constraint)

    elif rule.rule_type == "regex":
        return isinstance(value, str) and re.fullmatch(rule.constraint, value) is not None

    elif rule.rule_type == "custom":
        if callable(rule.constraint):
            return bool(rule.constraint(value))
        return bool(rule.constraint)

    return True


class ConfigValidator:
    """Holds schema rules per configuration group and checks trees against them."""

    def __init__(self, validation_level: ValidationLevel = ValidationLevel.STRICT):
        self.validation_level = validation_level
        self.schemas: Dict[str, List[ConfigValidationRule]] = {}

    def register(self, group: str, rules: Iterable[ConfigValidationRule]) -> None:
        self.schemas.setdefault(group, []).extend(rules)

    def validate(self, tree: Dict[str, Any]) -> Tuple[List[str], List[str]]:
        """
        Validate every registered group of ``tree``.

        Args:
            tree: Resolved configuration tree

        Returns:
            Tuple of (errors, warnings)
        """
        errors: List[str] = []
        warnings: List[str] = []

        for group, rules in self.schemas.items():
            group_tree = tree.get(group)
            if not isinstance(group_tree, dict):
                group_tree = {}

            for rule in rules:
                message = self._check(group, group_tree, rule)
                if message is None:
                    continue
                if (rule.level == ValidationLevel.PERMISSIVE or
                        self.validation_level == ValidationLevel.PERMISSIVE):
                    warnings.append(message)
                else:
                    errors.append(message)

        for warning in warnings:
            logger.warning(f"Configuration validation warning: {warning}")

        return errors, warnings

    @staticmethod
    def _check(group: str, group_tree: Dict[str, Any], rule: ConfigValidationRule):
        location = f"{group}.{rule.parameter}"

        if not has_nested_value(group_tree, rule.parameter):
            if rule.rule_type == "required":
                return f"{location}: {rule.error_message}"
            return None

        value = get_nested_value(group_tree, rule.parameter)

        try:
            if validate_parameter(value, rule):
                return None
        except Exception as e:
            return f"{location}: validation failed: {e}"

        return f"{location}: {rule.error_message} (value: {value!r})"


__all__ = [
    "ConfigValidationRule",
    "ConfigValidator",
    "ValidationLevel",
    "validate_parameter",
]
