"""
Data sanitization for credentials that flow through story execution.

Stories routinely type passwords and tokens into forms, and environment URLs
may embed basic-auth credentials. Everything that reaches a log line or a
diagnostic prompt passes through here first.
"""

import hashlib
import logging
import re
from copy import deepcopy
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Dict, List, Optional, Pattern

logger = logging.getLogger(__name__)

SENSITIVE_KEYS = (
    "password",
    "passwd",
    "secret",
    "token",
    "api_key",
    "apikey",
    "authorization",
    "service_key",
)


class RedactionMethod(Enum):
    """Methods for redacting sensitive data."""
    HASH = auto()          # Replace with hash
    PARTIAL = auto()       # Show partial (first/last few chars)
    PLACEHOLDER = auto()   # Replace with placeholder text


@dataclass
class SensitiveDataPattern:
    """Pattern for identifying sensitive data."""

    name: str
    pattern: Pattern[str]
    redaction_method: RedactionMethod = RedactionMethod.PLACEHOLDER
    placeholder: str = "[REDACTED]"
    partial_chars: int = 4
    enabled: bool = True

    def matches(self, text: str) -> List[re.Match]:
        """Find all matches in text."""
        if not self.enabled:
            return []
        return list(self.pattern.finditer(text))


class DataSanitizer:
    """Redacts credentials from strings, dictionaries and log records."""

    def __init__(self) -> None:
        self.patterns: List[SensitiveDataPattern] = []
        self._setup_default_patterns()

    def _setup_default_patterns(self) -> None:
        self.patterns.extend([
            SensitiveDataPattern(
                name="bearer_token",
                pattern=re.compile(r'Bearer\s+[A-Za-z0-9\-._~+/]+=*', re.IGNORECASE),
                placeholder="Bearer [REDACTED]",
            ),
            SensitiveDataPattern(
                name="api_key_prefix",
                pattern=re.compile(
                    r'(api[_-]?key|apikey|api_secret|access[_-]?token)\s*[:=]\s*["\']?[^"\'\s,}]+["\']?',
                    re.IGNORECASE,
                ),
                placeholder="[API_KEY]",
            ),
            SensitiveDataPattern(
                name="openai_key",
                pattern=re.compile(r'\bsk-[A-Za-z0-9_\-]{16,}\b'),
                redaction_method=RedactionMethod.PARTIAL,
            ),
            SensitiveDataPattern(
                name="jwt_token",
                pattern=re.compile(r'eyJ[A-Za-z0-9_-]+\.eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+'),
                redaction_method=RedactionMethod.HASH,
            ),
            SensitiveDataPattern(
                name="password_field",
                pattern=re.compile(
                    r'(password|passwd|pwd)\s*[:=]\s*["\']?[^"\'\s,}]+["\']?', re.IGNORECASE
                ),
                placeholder="[PASSWORD]",
            ),
            SensitiveDataPattern(
                name="url_credentials",
                pattern=re.compile(r'(?<=://)[^/\s:@]+:[^/\s@]+(?=@)'),
                placeholder="[CREDENTIALS]",
            ),
        ])

    def sanitize_string(self, text: str) -> str:
        """Redact every enabled pattern in text."""
        if not text:
            return text

        patterns = [p for p in self.patterns if p.enabled]
        result = text

        all_matches = []
        for pattern in patterns:
            for match in pattern.matches(result):
                all_matches.append((match, pattern))

        # Process from the end so earlier spans keep their offsets
        all_matches.sort(key=lambda x: x[0].start(), reverse=True)

        last_start = len(result) + 1
        for match, pattern in all_matches:
            if match.end() > last_start:
                continue
            result = self._apply_redaction(result, match, pattern)
            last_start = match.start()

        return result

    def _apply_redaction(
        self,
        text: str,
        match: re.Match,
        pattern: SensitiveDataPattern,
    ) -> str:
        """Apply redaction based on method."""
        start, end = match.span()
        matched_text = match.group()

        if pattern.redaction_method == RedactionMethod.HASH:
            hash_val = hashlib.sha256(matched_text.encode()).hexdigest()[:8]
            replacement = f"[HASH:{hash_val}]"
        elif pattern.redaction_method == RedactionMethod.PARTIAL:
            keep = pattern.partial_chars
            if len(matched_text) > keep * 2:
                replacement = (
                    matched_text[:keep]
                    + "*" * (len(matched_text) - keep * 2)
                    + matched_text[-keep:]
                )
            else:
                replacement = "*" * len(matched_text)
        else:
            replacement = pattern.placeholder

        return text[:start] + replacement + text[end:]

    def sanitize_dict(self, data: Dict[str, Any], max_depth: int = 10) -> Dict[str, Any]:
        """
        Sanitize a dictionary recursively.

        Values stored under credential-looking keys are replaced outright;
        every other string value is pattern-scrubbed.

        Returns:
            Sanitized dictionary (copy)
        """
        if max_depth <= 0:
            logger.warning("Max recursion depth reached in sanitize_dict")
            return data

        result = deepcopy(data)

        def _sanitize_value(value: Any, key: Optional[str] = None) -> Any:
            if key and isinstance(value, str) and value and is_sensitive_key(key):
                return "[REDACTED]"
            if isinstance(value, str):
                return self.sanitize_string(value)
            if isinstance(value, dict):
                return self.sanitize_dict(value, max_depth - 1)
            if isinstance(value, list):
                return [_sanitize_value(item) for item in value]
            return value

        for key, value in result.items():
            result[key] = _sanitize_value(value, str(key))

        return result

    def sanitize_log_record(self, record: logging.LogRecord) -> logging.LogRecord:
        """
        Sanitize a log record in place.

        Args:
            record: Log record to sanitize

        Returns:
            Sanitized log record
        """
        if hasattr(record, "msg"):
            record.msg = self.sanitize_string(str(record.msg))

        if hasattr(record, "args") and record.args:
            if isinstance(record.args, dict):
                record.args = self.sanitize_dict(record.args)
            else:
                record.args = tuple(
                    self.sanitize_string(arg) if isinstance(arg, str) else arg
                    for arg in record.args
                )

        return record


def is_sensitive_key(key: str) -> bool:
    """Return True when a field or locator name suggests a credential."""
    lowered = key.lower()
    return any(marker in lowered for marker in SENSITIVE_KEYS)


def redact_step_value(target: Optional[str], value: Optional[str]) -> Optional[str]:
    """
    Hide a typed value when the step targets a credential field.

    Args:
        target: Step locator (e.g. ``#password``)
        value: Value the step types

    Returns:
        The value, or a placeholder when it must not be logged
    """
    if value and target and is_sensitive_key(target):
        return "[REDACTED]"
    return value
