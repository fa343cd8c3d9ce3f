"""Remediation cost resolution.

A rule carries two remediation triples (function, gap multiplier, base
effort): the defaults authored with the definition and the overrides stored in
organization metadata. Each attribute is resolved on its own: an override wins
over the default, and an attribute with neither is absent.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from rulebook.api.exceptions import ValidationError_
from rulebook.models.rule import RemediationFunctionType

ATTRIBUTES = ("function", "gap_multiplier", "base_effort")

# Attributes each function reads besides the function itself
FUNCTION_ATTRIBUTES: dict[RemediationFunctionType, frozenset[str]] = {
    RemediationFunctionType.LINEAR: frozenset({"gap_multiplier"}),
    RemediationFunctionType.LINEAR_OFFSET: frozenset({"gap_multiplier", "base_effort"}),
    RemediationFunctionType.CONSTANT_ISSUE: frozenset({"base_effort"}),
}

_DURATION = re.compile(r"^\s*(?:(\d+)\s*d)?\s*(?:(\d+)\s*h)?\s*(?:(\d+)\s*min)?\s*$")


class Provenance(str, Enum):
    """Where an effective remediation value comes from."""

    DEFAULT = "default"
    OVERRIDDEN = "overridden"


@dataclass(frozen=True)
class RemediationSettings:
    """One remediation triple, each attribute optional."""

    function: Optional[str] = None
    gap_multiplier: Optional[str] = None
    base_effort: Optional[str] = None

    def is_empty(self) -> bool:
        return self.function is None and self.gap_multiplier is None and self.base_effort is None


@dataclass(frozen=True)
class ResolvedAttribute:
    value: str
    provenance: Provenance

    @property
    def is_overridden(self) -> bool:
        return self.provenance == Provenance.OVERRIDDEN


@dataclass(frozen=True)
class ResolvedRemediation:
    """Effective remediation triple with the provenance of every attribute."""

    function: Optional[ResolvedAttribute] = None
    gap_multiplier: Optional[ResolvedAttribute] = None
    base_effort: Optional[ResolvedAttribute] = None

    @property
    def function_value(self) -> Optional[str]:
        return self.function.value if self.function else None

    @property
    def gap_multiplier_value(self) -> Optional[str]:
        return self.gap_multiplier.value if self.gap_multiplier else None

    @property
    def base_effort_value(self) -> Optional[str]:
        return self.base_effort.value if self.base_effort else None

    @property
    def is_overridden(self) -> bool:
        return any(
            attribute is not None and attribute.is_overridden
            for attribute in (self.function, self.gap_multiplier, self.base_effort)
        )

    @property
    def is_empty(self) -> bool:
        return self.function is None and self.gap_multiplier is None and self.base_effort is None

    def as_settings(self) -> RemediationSettings:
        return RemediationSettings(
            function=self.function_value,
            gap_multiplier=self.gap_multiplier_value,
            base_effort=self.base_effort_value,
        )


def resolve_attribute(default: Optional[str], override: Optional[str]) -> Optional[ResolvedAttribute]:
    """Resolve one attribute: override first, then default, else absent."""
    if override is not None:
        return ResolvedAttribute(override, Provenance.OVERRIDDEN)
    if default is not None:
        return ResolvedAttribute(default, Provenance.DEFAULT)
    return None


def resolve_remediation(
    defaults: RemediationSettings,
    overrides: RemediationSettings,
) -> ResolvedRemediation:
    """Compute the effective remediation triple.

    When the function itself is overridden, default values of attributes the
    overriding function does not read are dropped so that the effective triple
    never mixes a new function with a stale default it cannot use.
    """
    resolved = {
        name: resolve_attribute(getattr(defaults, name), getattr(overrides, name))
        for name in ATTRIBUTES
    }

    function = resolved["function"]
    if function is not None and function.is_overridden:
        used = _attributes_used_by(function.value)
        if used is not None:
            for name in ("gap_multiplier", "base_effort"):
                attribute = resolved[name]
                if attribute is not None and not attribute.is_overridden and name not in used:
                    resolved[name] = None

    return ResolvedRemediation(**resolved)


def _attributes_used_by(function: str) -> Optional[frozenset[str]]:
    try:
        return FUNCTION_ATTRIBUTES[RemediationFunctionType(function)]
    except ValueError:
        return None


def is_valid_duration(value: str) -> bool:
    """Check a duration such as ``5d``, ``10h``, ``1h 30min``."""
    match = _DURATION.match(value or "")
    return bool(match) and any(group is not None for group in match.groups())


def validate_remediation(settings: RemediationSettings) -> RemediationSettings:
    """Validate a remediation triple about to be stored as an override.

    An empty triple is valid and means "reset to defaults".

    Raises:
        ValidationError_: unknown function, bad duration, or attributes that
            do not match the function
    """
    if settings.is_empty():
        return settings

    if settings.function is None:
        raise ValidationError_(
            "A remediation function is required when setting remediation values",
            field="remediation_function",
        )
    try:
        function = RemediationFunctionType(settings.function)
    except ValueError:
        raise ValidationError_(
            f"Unknown remediation function: {settings.function}",
            field="remediation_function",
        ) from None

    used = FUNCTION_ATTRIBUTES[function]
    for name in ("gap_multiplier", "base_effort"):
        value = getattr(settings, name)
        if name in used:
            if value is None:
                raise ValidationError_(
                    f"Remediation function {function.value} requires a {name.replace('_', ' ')}",
                    field=f"remediation_{name}",
                )
            if not is_valid_duration(value):
                raise ValidationError_(
                    f"Invalid duration '{value}' for {name.replace('_', ' ')}",
                    field=f"remediation_{name}",
                )
        elif value is not None:
            raise ValidationError_(
                f"Remediation function {function.value} does not use a {name.replace('_', ' ')}",
                field=f"remediation_{name}",
            )

    return RemediationSettings(
        function=function.value,
        gap_multiplier=settings.gap_multiplier.strip() if settings.gap_multiplier else None,
        base_effort=settings.base_effort.strip() if settings.base_effort else None,
    )
