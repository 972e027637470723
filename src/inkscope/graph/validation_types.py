"""Validation types for story integrity checks."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal


@dataclass
class ValidationCheck:
    """Result of a single validation check.

    Attributes:
        name: Identifier for the check.
        severity: "pass", "warn", or "fail".
        message: Human-readable description of the result.
    """

    name: str
    severity: Literal["pass", "warn", "fail"]
    message: str = ""


@dataclass
class IntegrityReport:
    """Aggregated results of story integrity checks.

    Attributes:
        checks: Individual check results.
        suggestions: Follow-up advice for the author.
    """

    checks: list[ValidationCheck] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)

    @property
    def issues(self) -> list[str]:
        """Messages of failed checks."""
        return [c.message for c in self.checks if c.severity == "fail"]

    @property
    def warnings(self) -> list[str]:
        """Messages of checks that passed with a warning."""
        return [c.message for c in self.checks if c.severity == "warn"]

    @property
    def is_valid(self) -> bool:
        """True if no check failed."""
        return not any(c.severity == "fail" for c in self.checks)

    @property
    def summary(self) -> str:
        """Human-readable summary of all checks."""
        fails = [c for c in self.checks if c.severity == "fail"]
        warns = [c for c in self.checks if c.severity == "warn"]
        passes = [c for c in self.checks if c.severity == "pass"]

        parts: list[str] = []
        if fails:
            parts.append(f"{len(fails)} failed")
        if warns:
            parts.append(f"{len(warns)} warnings")
        if passes:
            parts.append(f"{len(passes)} passed")
        return ", ".join(parts)
