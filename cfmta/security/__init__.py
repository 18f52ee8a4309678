"""
Security module for cfmta.

Input validation for deployment configuration and redaction of
credentials from log output.
"""

from .sanitizer import InputSanitizer
from .secure_memory import SecureString, OutputRedactor

__all__ = ["InputSanitizer", "SecureString", "OutputRedactor"]
