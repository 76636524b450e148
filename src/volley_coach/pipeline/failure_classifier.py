"""Deterministic backend failure classification for processor results."""

from __future__ import annotations

from dataclasses import dataclass

from volley_coach.pipeline.backend.base import BackendCallError
from volley_coach.pipeline.models import FailureClass

FAILURE_CLASSIFIER_VERSION = 1

_BILLING_OR_QUOTA_PATTERNS: tuple[str, ...] = (
    "quota",
    "resource_exhausted",
    "billing",
    "payment",
    "credits",
    "usage limit",
)
_ACCESS_OR_AUTH_PATTERNS: tuple[str, ...] = (
    "unauthorized",
    "forbidden",
    "permission denied",
    "permission_denied",
    "invalid api key",
    "api key not valid",
    "unauthenticated",
)
_MODEL_NOT_AVAILABLE_PATTERNS: tuple[str, ...] = (
    "model not found",
    "unknown model",
    "unsupported model",
    "is not found for api version",
    "not available in your region",
)
_GENERIC_TRANSIENT_PATTERNS: tuple[str, ...] = (
    "temporarily unavailable",
    "unavailable",
    "connection reset",
    "network error",
    "try again later",
)
_TRANSIENT_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


@dataclass(slots=True)
class BackendFailureClassification:
    """Normalized failure classification result."""

    failure_class: FailureClass
    reason_code: str
    matched_rule: str
    matched_pattern: str | None

    def to_details(self) -> dict[str, object]:
        """Serialize classifier diagnostics for result data."""

        return {
            "failureClass": self.failure_class.value,
            "reasonCode": self.reason_code,
            "classifierVersion": FAILURE_CLASSIFIER_VERSION,
        }


def classify_backend_failure(*, agent: str, error: BaseException) -> BackendFailureClassification:
    """Classify a failed backend call into a deterministic failure class."""

    if isinstance(error, TimeoutError) or (
        isinstance(error, BackendCallError) and error.timed_out
    ):
        return BackendFailureClassification(
            failure_class=FailureClass.TIMEOUT,
            reason_code=f"{agent}_timeout",
            matched_rule="timeout",
            matched_pattern=None,
        )

    status_code = error.status_code if isinstance(error, BackendCallError) else None
    body = error.body if isinstance(error, BackendCallError) else ""
    haystack = f"{error}\n{body}".lower()

    pattern = _first_match(haystack, _BILLING_OR_QUOTA_PATTERNS)
    if pattern is not None:
        return BackendFailureClassification(
            failure_class=FailureClass.BILLING_OR_QUOTA,
            reason_code=f"{agent}_billing_or_quota",
            matched_rule="billing_or_quota",
            matched_pattern=pattern,
        )

    pattern = _first_match(haystack, _ACCESS_OR_AUTH_PATTERNS)
    if pattern is not None or status_code in {401, 403}:
        return BackendFailureClassification(
            failure_class=FailureClass.ACCESS_OR_AUTH,
            reason_code=f"{agent}_access_or_auth",
            matched_rule="access_or_auth",
            matched_pattern=pattern,
        )

    pattern = _first_match(haystack, _MODEL_NOT_AVAILABLE_PATTERNS)
    if pattern is not None or status_code == 404:
        return BackendFailureClassification(
            failure_class=FailureClass.MODEL_NOT_AVAILABLE,
            reason_code=f"{agent}_model_not_available",
            matched_rule="model_not_available",
            matched_pattern=pattern,
        )

    pattern = _first_match(haystack, _GENERIC_TRANSIENT_PATTERNS)
    if pattern is not None or status_code in _TRANSIENT_STATUS_CODES:
        return BackendFailureClassification(
            failure_class=FailureClass.BACKEND_TRANSIENT,
            reason_code=f"{agent}_backend_transient",
            matched_rule=(
                "transient_status_code"
                if status_code in _TRANSIENT_STATUS_CODES and pattern is None
                else "generic_transient"
            ),
            matched_pattern=pattern,
        )

    return BackendFailureClassification(
        failure_class=FailureClass.BACKEND_NON_RETRYABLE,
        reason_code=f"{agent}_backend_non_retryable",
        matched_rule="fallback_non_retryable",
        matched_pattern=None,
    )


def _first_match(haystack: str, patterns: tuple[str, ...]) -> str | None:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None
