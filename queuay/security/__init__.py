"""
Credential redaction for logs and diagnostic payloads.
"""

from queuay.security.sanitizer import DataSanitizer, redact_step_value

__all__ = ["DataSanitizer", "redact_step_value"]
