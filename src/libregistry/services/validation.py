# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Validation Pipeline

Single responsibility: run an ordered chain of validation rules over a piece
of data, threading one AggregateValidationError through every rule.

Each rule receives (data, context, error) and returns the data for the next
rule. A rule can:
- transform the data and return it
- record a non-fatal problem with error.add_error(...) and keep going
- abort right away by raising the error object it was given
- return SKIP_REMAINING to stop the chain because nothing else is needed
  (e.g. the library is already installed at an equal or newer patch)

Rules run strictly one after another, awaiting async rules, because later
rules rely on the transformations earlier rules made.
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, List, Optional, Union

from ..core.errors import AggregateValidationError

logger = logging.getLogger(__name__)


class _SkipRemaining:
    """Sentinel type; distinct from None and from empty results."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SKIP_REMAINING"


SKIP_REMAINING = _SkipRemaining()

RuleFunction = Callable[[Any, Any, AggregateValidationError], Union[Any, Awaitable[Any]]]


class ValidationRule:
    """Base class for pipeline rules."""

    name: str = "rule"

    async def apply(self, data: Any, context: Any, error: AggregateValidationError) -> Any:
        raise NotImplementedError


class FunctionRule(ValidationRule):
    """Wraps a plain or async function as a rule."""

    def __init__(self, func: RuleFunction, name: Optional[str] = None):
        self.func = func
        self.name = name or getattr(func, "__name__", "rule")

    async def apply(self, data: Any, context: Any, error: AggregateValidationError) -> Any:
        result = self.func(data, context, error)
        if inspect.isawaitable(result):
            result = await result
        return result


class ThrowIfErrorsRule(ValidationRule):
    """Raises the aggregate if any rule recorded a problem; otherwise passes data through."""

    name = "throw_if_errors"

    async def apply(self, data: Any, context: Any, error: AggregateValidationError) -> Any:
        if error.has_errors():
            raise error
        return data


def throw_if_errors(data: Any, context: Any, error: AggregateValidationError) -> Any:
    """Function form of ThrowIfErrorsRule for use with add_rule()."""
    if error.has_errors():
        raise error
    return data


class ValidationPipeline:
    """
    Ordered rule chain with a shared error aggregate.

    Usage:
        pipeline = (
            ValidationPipeline()
            .add_rule(check_metadata)
            .add_rule_when(skip_if_installed, check_installed)
            .add_rule(throw_if_errors)
        )
        result = await pipeline.run(directory, context)
    """

    def __init__(self):
        self.rules: List[ValidationRule] = []

    def add_rule(self, rule: Union[ValidationRule, RuleFunction]) -> "ValidationPipeline":
        """Append a rule. Plain and async functions are wrapped in FunctionRule."""
        if not isinstance(rule, ValidationRule):
            rule = FunctionRule(rule)
        self.rules.append(rule)
        return self

    def add_rule_when(
        self,
        rule: Union[ValidationRule, RuleFunction],
        condition: bool
    ) -> "ValidationPipeline":
        """Append a rule only if condition is true."""
        if condition:
            return self.add_rule(rule)
        return self

    async def run(
        self,
        data: Any,
        context: Any = None,
        error: Optional[AggregateValidationError] = None
    ) -> Any:
        """
        Execute the rules in insertion order.

        Args:
            data: Input of the first rule
            context: Passed unchanged to every rule (e.g. a path prefix)
            error: Aggregate to collect into; a new one is created if omitted

        Returns:
            The output of the last rule, or SKIP_REMAINING if a rule stopped the chain

        Raises:
            AggregateValidationError: If a rule aborts or throw_if_errors finds problems
        """
        if error is None:
            error = AggregateValidationError()

        value = data
        for rule in self.rules:
            value = await rule.apply(value, context, error)
            if value is SKIP_REMAINING:
                logger.debug(f"Validation rule {rule.name} requested to skip remaining rules")
                break
        return value
