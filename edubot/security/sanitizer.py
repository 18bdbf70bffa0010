"""
Data sanitization for log output.

Records replayed against the portal carry student personal data and the
operator's session credentials. Everything that reaches a log handler goes
through ``DataSanitizer`` first.
"""

import hashlib
import logging
import re
from copy import deepcopy
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, List, Optional, Pattern

logger = logging.getLogger(__name__)


class RedactionMethod(Enum):
    """Methods for redacting sensitive data."""
    MASK = auto()          # Replace with asterisks
    HASH = auto()          # Replace with hash
    PARTIAL = auto()       # Show partial (first/last few chars)
    PLACEHOLDER = auto()   # Replace with placeholder text


@dataclass
class SensitiveDataPattern:
    """Pattern for identifying sensitive data."""

    name: str
    pattern: Pattern[str]
    redaction_method: RedactionMethod = RedactionMethod.MASK
    placeholder: str = "[REDACTED]"
    partial_chars: int = 2
    description: str = ""
    enabled: bool = True

    def matches(self, text: str) -> List[re.Match]:
        """Find all matches in text."""
        if not self.enabled:
            return []
        return list(self.pattern.finditer(text))


@dataclass
class SanitizationRule:
    """Rule for sanitizing values, optionally keyed on field names."""

    name: str
    patterns: List[SensitiveDataPattern]
    apply_to_keys: List[str] = field(default_factory=list)
    redact_whole_value_for_keys: bool = False
    enabled: bool = True


class DataSanitizer:
    """Redacts credentials and personal data from strings, dicts and log records."""

    def __init__(self):
        self.patterns: List[SensitiveDataPattern] = []
        self.rules: List[SanitizationRule] = []
        self._setup_default_patterns()
        self._setup_default_rules()

    def _setup_default_patterns(self) -> None:
        # Credentials
        self.patterns.extend([
            SensitiveDataPattern(
                name="password_field",
                pattern=re.compile(
                    r'(password|passwd|pwd|şifre|parola)\s*[:=]\s*["\']?([^"\'\s,}]+)["\']?',
                    re.IGNORECASE
                ),
                redaction_method=RedactionMethod.PLACEHOLDER,
                placeholder="[PASSWORD]",
                description="Password assignments"
            ),
            SensitiveDataPattern(
                name="bearer_token",
                pattern=re.compile(r'Bearer\s+[A-Za-z0-9\-._~+/]+=*', re.IGNORECASE),
                redaction_method=RedactionMethod.PLACEHOLDER,
                placeholder="Bearer [TOKEN]",
                description="Bearer authentication tokens"
            ),
            SensitiveDataPattern(
                name="jwt_token",
                pattern=re.compile(r'eyJ[A-Za-z0-9_-]+\.eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+'),
                redaction_method=RedactionMethod.HASH,
                description="JWT tokens"
            ),
            SensitiveDataPattern(
                name="session_cookie",
                pattern=re.compile(
                    r'((?:ASP\.NET_SessionId|PHPSESSID|JSESSIONID|session(?:_?id)?)\s*=\s*)([^;\s&"\']+)',
                    re.IGNORECASE
                ),
                redaction_method=RedactionMethod.PLACEHOLDER,
                placeholder="[SESSION]",
                description="Session cookies and query parameters"
            ),
        ])

        # Personal information
        self.patterns.extend([
            SensitiveDataPattern(
                name="email",
                pattern=re.compile(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b'),
                redaction_method=RedactionMethod.PARTIAL,
                partial_chars=3,
                description="Email addresses"
            ),
            SensitiveDataPattern(
                name="phone_tr",
                pattern=re.compile(r'(?<!\d)(?:\+90|0)?\s?5\d{2}\s?\d{3}\s?\d{2}\s?\d{2}(?!\d)'),
                redaction_method=RedactionMethod.PARTIAL,
                description="Turkish mobile numbers"
            ),
            SensitiveDataPattern(
                name="national_id",
                pattern=re.compile(r'(?<!\d)[1-9]\d{10}(?!\d)'),
                redaction_method=RedactionMethod.PARTIAL,
                description="11-digit national identity numbers"
            ),
        ])

    def _setup_default_rules(self) -> None:
        self.rules.append(
            SanitizationRule(
                name="credentials",
                patterns=self._patterns_named(
                    "password_field", "bearer_token", "jwt_token", "session_cookie"
                ),
                apply_to_keys=["password", "passwd", "sifre", "şifre", "token",
                               "secret", "authorization", "cookie", "otp"],
                redact_whole_value_for_keys=True
            )
        )
        self.rules.append(
            SanitizationRule(
                name="personal_info",
                patterns=self._patterns_named("email", "phone_tr", "national_id"),
            )
        )

    def _patterns_named(self, *names: str) -> List[SensitiveDataPattern]:
        return [p for p in self.patterns if p.name in names]

    def add_pattern(self, pattern: SensitiveDataPattern) -> None:
        """Add a custom pattern."""
        self.patterns.append(pattern)

    def add_rule(self, rule: SanitizationRule) -> None:
        """Add a custom rule."""
        self.rules.append(rule)

    def sanitize_string(
        self,
        text: str,
        patterns: Optional[List[SensitiveDataPattern]] = None
    ) -> str:
        """
        Sanitize a string using specified patterns.

        Args:
            text: Text to sanitize
            patterns: Patterns to use (defaults to all enabled patterns)

        Returns:
            Sanitized text
        """
        if not text:
            return text

        patterns = patterns or [p for p in self.patterns if p.enabled]

        all_matches = []
        for pattern in patterns:
            for match in pattern.matches(text):
                all_matches.append((match, pattern))

        # Apply from the end so earlier offsets stay valid; skip overlaps.
        all_matches.sort(key=lambda x: x[0].start(), reverse=True)
        result = text
        boundary = len(text) + 1
        for match, pattern in all_matches:
            if match.end() > boundary:
                continue
            result = self._apply_redaction(result, match, pattern)
            boundary = match.start()

        return result

    def _apply_redaction(
        self,
        text: str,
        match: re.Match,
        pattern: SensitiveDataPattern
    ) -> str:
        start, end = match.span()
        matched_text = match.group()

        if pattern.redaction_method == RedactionMethod.MASK:
            replacement = "*" * len(matched_text)

        elif pattern.redaction_method == RedactionMethod.HASH:
            hash_val = hashlib.sha256(matched_text.encode()).hexdigest()[:8]
            replacement = f"[HASH:{hash_val}]"

        elif pattern.redaction_method == RedactionMethod.PARTIAL:
            if len(matched_text) > pattern.partial_chars * 2:
                replacement = (
                    matched_text[:pattern.partial_chars] +
                    "*" * (len(matched_text) - pattern.partial_chars * 2) +
                    matched_text[-pattern.partial_chars:]
                )
            else:
                replacement = "*" * len(matched_text)

        else:  # PLACEHOLDER
            if match.lastindex and match.lastindex >= 2:
                # Keep the key, replace the value
                replacement = (
                    matched_text[:match.start(2) - start] + pattern.placeholder
                )
            else:
                replacement = pattern.placeholder

        return text[:start] + replacement + text[end:]

    def sanitize_value(self, value: Any, key: Optional[str] = None, max_depth: int = 10) -> Any:
        """Sanitize a single value of any supported type."""
        if max_depth <= 0:
            return value
        if isinstance(value, str):
            rules = [r for r in self.rules if r.enabled]
            if key:
                key_lower = key.lower()
                for rule in rules:
                    if rule.redact_whole_value_for_keys and any(
                        k in key_lower for k in rule.apply_to_keys
                    ):
                        return "[REDACTED]"
            patterns: List[SensitiveDataPattern] = []
            for rule in rules:
                patterns.extend(rule.patterns)
            return self.sanitize_string(value, patterns)
        if isinstance(value, dict):
            return {
                k: self.sanitize_value(v, str(k), max_depth - 1)
                for k, v in value.items()
            }
        if isinstance(value, (list, tuple)):
            return type(value)(self.sanitize_value(item, key, max_depth - 1) for item in value)
        return value

    def sanitize_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Sanitize a dictionary recursively.

        Returns:
            Sanitized dictionary (copy)
        """
        return self.sanitize_value(deepcopy(data))

    def sanitize_log_record(self, record: logging.LogRecord) -> logging.LogRecord:
        """
        Sanitize a log record.

        The message is rendered with its args first so that values
        interpolated into the message are covered as well.
        """
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            message = str(record.msg)
        record.msg = self.sanitize_string(message)
        record.args = None
        return record


_default_sanitizer = DataSanitizer()


def sanitize_string(text: str) -> str:
    """Sanitize a string using default patterns."""
    return _default_sanitizer.sanitize_string(text)


def sanitize_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """Sanitize a dictionary using default rules."""
    return _default_sanitizer.sanitize_dict(data)
