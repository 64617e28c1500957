"""
Classification errors with actionable diagnostics.

These errors are raised at the entry points of marker selection, scoring,
training and combination when an input precondition is violated. They carry
the same structured information as a validation report: what was expected,
what was found, and how to fix it. Error codes enable programmatic handling.

Error Codes:
    E101_NO_MARKERS: Marker selection produced an empty gene set
    E102_INSUFFICIENT_OVERLAP: Too few genes shared between inputs
    E103_LABEL_CARDINALITY: Fewer than two distinct reference labels
    E104_DIMENSION_MISMATCH: Labels or gene axes cannot be aligned
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ClassificationError(ValueError):
    """Base class for classification precondition failures.

    Attributes
    ----------
    message : str
        Human-readable error description
    error_code : str
        Machine-readable error code for programmatic handling
    expected : Any
        What the check expected to find
    found : Any
        What was actually found
    suggestion : str
        Actionable suggestion for fixing the error
    context : Dict[str, Any]
        Additional context for debugging
    """

    error_code = "E100_CLASSIFICATION"
    default_suggestion = ""

    def __init__(
        self,
        message: str,
        expected: Any = None,
        found: Any = None,
        suggestion: str = "",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.expected = expected
        self.found = found
        self.suggestion = suggestion or self.default_suggestion
        self.context = context or {}

    def __str__(self) -> str:
        parts = [f"[{self.error_code}] {self.message}"]
        if self.expected is not None:
            parts.append(f"  Expected: {self.expected}")
        if self.found is not None:
            parts.append(f"  Found: {self.found}")
        if self.suggestion:
            parts.append(f"  Suggestion: {self.suggestion}")
        return "\n".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "expected": str(self.expected) if self.expected is not None else None,
            "found": str(self.found) if self.found is not None else None,
            "suggestion": self.suggestion,
            "context": self.context,
        }


class NoMarkersError(ClassificationError):
    """Marker selection yielded no genes for a reference."""

    error_code = "E101_NO_MARKERS"
    default_suggestion = (
        "Check that labels have distinct expression profiles, or lower "
        "the marker thresholds (sd_thresh, min_effect)."
    )


class InsufficientOverlapError(ClassificationError):
    """Too few genes are shared between test, reference or markers."""

    error_code = "E102_INSUFFICIENT_OVERLAP"
    default_suggestion = (
        "Make sure both matrices use the same gene identifiers "
        "(e.g. symbols vs Ensembl IDs)."
    )


class LabelCardinalityError(ClassificationError):
    """Fewer than two distinct labels were supplied for a reference."""

    error_code = "E103_LABEL_CARDINALITY"
    default_suggestion = "Supply a reference with at least two labels."


class DimensionMismatchError(ClassificationError):
    """Label vector or gene axes cannot be aligned with the matrix."""

    error_code = "E104_DIMENSION_MISMATCH"
