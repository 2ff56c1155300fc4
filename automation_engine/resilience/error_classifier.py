"""
Error classifier.

An ordered table of message patterns maps each failure to a category,
severity, retry verdict and remediation suggestions. The classifier also
keeps rolling counters and writes high/critical errors to the audit log.
"""

from __future__ import annotations

import logging
import re
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:
    from ..storage.base import AuditLogStore

logger = logging.getLogger(__name__)

MAX_RECENT_ERRORS = 100
TOP_ERRORS = 10
TIME_RANGE_RE = re.compile(r"^(\d+)([mhd])$")


class ErrorCategory(str, Enum):
    SYSTEM = "system"
    USER = "user"
    AUTOMATION = "automation"
    INTEGRATION = "integration"
    PERFORMANCE = "performance"
    SECURITY = "security"


class ErrorSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class ErrorProfile:
    """What a matched pattern says about an error."""

    category: ErrorCategory
    severity: ErrorSeverity
    retryable: bool
    suggestions: list[str] = field(default_factory=list)


@dataclass
class ErrorAnalysis:
    """Classification of a single error occurrence."""

    message: str
    category: ErrorCategory
    severity: ErrorSeverity
    retryable: bool
    suggestions: list[str]
    error_type: str
    pattern: str | None = None
    context: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "category": self.category.value,
            "severity": self.severity.value,
            "retryable": self.retryable,
            "suggestions": list(self.suggestions),
            "errorType": self.error_type,
            "pattern": self.pattern,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }


def _profile(category: str, severity: str, retryable: bool, suggestions: list[str]) -> ErrorProfile:
    return ErrorProfile(ErrorCategory(category), ErrorSeverity(severity), retryable, suggestions)


# First match wins; keep specific patterns above generic ones.
DEFAULT_PATTERNS: list[tuple[str, ErrorProfile]] = [
    (r"network.*timeout", _profile("integration", "medium", True, [
        "Check network connectivity", "Increase timeout values", "Verify endpoint availability"])),
    (r"connection.*refused", _profile("integration", "high", True, [
        "Verify service is running", "Check firewall settings", "Confirm correct port/host"])),
    (r"unauthorized|invalid.*credentials", _profile("security", "high", False, [
        "Verify credentials", "Check token expiration", "Confirm user permissions"])),
    (r"token.*expired|access.*denied|forbidden", _profile("security", "medium", False, [
        "Refresh authentication tokens", "Re-authenticate user", "Check permission levels"])),
    (r"validation.*failed|invalid.*input", _profile("user", "low", False, [
        "Review input data format", "Check required fields", "Validate data types"])),
    (r"rate.*limit|too many requests", _profile("integration", "medium", True, [
        "Implement backoff strategy", "Reduce request frequency", "Check API limits"])),
    (r"circuit breaker is open", _profile("integration", "medium", True, [
        "Wait for the dependency to recover", "Check the remote service status"])),
    (r"maximum concurrent sessions", _profile("performance", "medium", True, [
        "Wait for running browser steps to finish", "Close unused browser sessions"])),
    (r"heap out of memory|out of memory|enomem", _profile("performance", "critical", False, [
        "Increase memory allocation", "Optimize data processing", "Check for memory leaks"])),
    (r"disk.*full|enospc|no space left", _profile("system", "critical", False, [
        "Free up disk space", "Archive old logs", "Increase storage capacity"])),
    (r"database.*connection", _profile("system", "high", True, [
        "Check database connectivity", "Verify connection string", "Restart database service"])),
    (r"syntax.*error|invalid.*query", _profile("automation", "medium", False, [
        "Review query syntax", "Check database schema", "Validate field names"])),
    (r"element.*not found|selector.*not found", _profile("automation", "medium", True, [
        "Update element selector", "Wait for page load", "Check DOM structure changes"])),
    (r"browser session crashed|page.*crash|browser.*crash", _profile("automation", "high", True, [
        "Restart browser session", "Reduce memory usage", "Update browser version"])),
    (r"script timed out", _profile("user", "medium", False, [
        "Simplify the script", "Process fewer items per run"])),
    (r"timeout|timed out", _profile("integration", "medium", True, [
        "Increase timeout values", "Verify endpoint availability"])),
]

DEFAULT_PROFILE = _profile("system", "medium", False, [])


def parse_time_range(time_range: str) -> timedelta:
    """Parse ``30m``/``24h``/``7d`` style windows."""
    match = TIME_RANGE_RE.match(time_range)
    if not match:
        raise ValueError(f"Invalid time range: {time_range}")
    value, unit = int(match.group(1)), match.group(2)
    if unit == "m":
        return timedelta(minutes=value)
    if unit == "h":
        return timedelta(hours=value)
    return timedelta(days=value)


class ErrorClassifier:
    """Pattern-table classifier with rolling statistics."""

    def __init__(self, audit_store: AuditLogStore | None = None) -> None:
        self._audit_store = audit_store
        self._patterns: list[tuple[re.Pattern[str], ErrorProfile]] = [
            (re.compile(p, re.IGNORECASE), profile) for p, profile in DEFAULT_PATTERNS
        ]
        self.reset_stats()

    # --- Pattern table ---

    def add_pattern(self, pattern: str, profile: ErrorProfile, first: bool = True) -> None:
        """Register a custom pattern, ahead of the defaults unless ``first`` is False."""
        entry = (re.compile(pattern, re.IGNORECASE), profile)
        if first:
            self._patterns.insert(0, entry)
        else:
            self._patterns.append(entry)

    def remove_pattern(self, pattern: str) -> bool:
        before = len(self._patterns)
        self._patterns = [(p, prof) for p, prof in self._patterns if p.pattern != pattern]
        return len(self._patterns) < before

    # --- Analysis ---

    def analyze(self, error: BaseException | str, context: dict[str, Any] | None = None) -> ErrorAnalysis:
        """Classify an error. First matching pattern wins."""
        context = dict(context or {})
        message = str(error) or type(error).__name__
        error_type = type(error).__name__ if isinstance(error, BaseException) else "Error"

        matched: re.Pattern[str] | None = None
        profile = DEFAULT_PROFILE
        for pattern, candidate in self._patterns:
            if pattern.search(message):
                matched, profile = pattern, candidate
                break

        suggestions = list(profile.suggestions)
        step_type = context.get("step_type")
        if step_type:
            suggestions.append(f"Review {step_type} step configuration")

        return ErrorAnalysis(
            message=message,
            category=profile.category,
            severity=profile.severity,
            retryable=profile.retryable,
            suggestions=suggestions,
            error_type=error_type,
            pattern=matched.pattern if matched else None,
            context=context,
        )

    async def handle(self, error: BaseException | str, context: dict[str, Any] | None = None) -> ErrorAnalysis:
        """Analyze, count, log and (for high/critical) persist an error."""
        analysis = self.analyze(error, context)
        self._record(analysis)

        log_level = {
            ErrorSeverity.LOW: logging.INFO,
            ErrorSeverity.MEDIUM: logging.WARNING,
            ErrorSeverity.HIGH: logging.ERROR,
            ErrorSeverity.CRITICAL: logging.CRITICAL,
        }[analysis.severity]
        logger.log(
            log_level,
            "Error classified as %s/%s: %s",
            analysis.category.value,
            analysis.severity.value,
            analysis.message,
        )

        if analysis.severity is ErrorSeverity.CRITICAL:
            logger.critical(
                "CRITICAL ERROR DETECTED: %s",
                analysis.message,
                extra={"error_analysis": analysis.to_dict()},
            )

        if analysis.severity in (ErrorSeverity.HIGH, ErrorSeverity.CRITICAL) and self._audit_store:
            try:
                await self._audit_store.insert(
                    level="error",
                    message=analysis.message,
                    metadata=analysis.to_dict(),
                )
            except Exception:
                logger.exception("Failed to write audit log for: %s", analysis.message)

        return analysis

    # --- Statistics ---

    def _record(self, analysis: ErrorAnalysis) -> None:
        self._total += 1
        self._by_severity[analysis.severity.value] += 1
        self._by_category[analysis.category.value] += 1
        tokens = analysis.message.split()
        self._by_token[tokens[0].lower() if tokens else "unknown"] += 1
        self._recent.appendleft(analysis)

    def stats(self) -> dict[str, Any]:
        return {
            "total": self._total,
            "bySeverity": dict(self._by_severity),
            "byCategory": dict(self._by_category),
            "byType": dict(self._by_token),
            "recentCount": len(self._recent),
        }

    def reset_stats(self) -> None:
        self._total = 0
        self._by_severity: Counter[str] = Counter()
        self._by_category: Counter[str] = Counter()
        self._by_token: Counter[str] = Counter()
        self._recent: deque[ErrorAnalysis] = deque(maxlen=MAX_RECENT_ERRORS)

    def recent_errors(
        self,
        category: str | None = None,
        severity: str | None = None,
        limit: int = 20,
    ) -> list[ErrorAnalysis]:
        results = [
            a for a in self._recent
            if (category is None or a.category.value == category)
            and (severity is None or a.severity.value == severity)
        ]
        return results[:limit]

    def report(self, time_range: str = "24h", now: datetime | None = None) -> dict[str, Any]:
        """Counts by severity/category and top recurring messages within a window."""
        now = now or datetime.now()
        since = now - parse_time_range(time_range)
        window = [a for a in self._recent if a.timestamp >= since]

        by_severity = Counter(a.severity.value for a in window)
        by_category = Counter(a.category.value for a in window)
        messages = Counter(a.message[:50] for a in window)

        return {
            "timeRange": time_range,
            "generatedAt": now.isoformat(),
            "summary": {
                "total": len(window),
                "bySeverity": dict(by_severity),
                "byCategory": dict(by_category),
            },
            "topErrors": [
                {"message": message, "count": count}
                for message, count in messages.most_common(TOP_ERRORS)
            ],
        }
