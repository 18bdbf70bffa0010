"""Security helpers for EDUBot."""

from edubot.security.sanitizer import (
    DataSanitizer,
    RedactionMethod,
    SanitizationRule,
    SensitiveDataPattern,
    sanitize_dict,
    sanitize_string,
)

__all__ = [
    "DataSanitizer",
    "RedactionMethod",
    "SanitizationRule",
    "SensitiveDataPattern",
    "sanitize_dict",
    "sanitize_string",
]
