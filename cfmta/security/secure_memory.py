"""
Handling of credentials in memory and in log output.

- SecureString: holds the bearer token sent to the deploy-service
- OutputRedactor: strips known secrets from error details and operation logs
"""

from typing import Iterable, List, Optional, Union


class SecureString:
    """
    Container for a sensitive string.

    The value is kept in a bytearray that clear() overwrites, and the
    object renders as [REDACTED], so handing it to a logger or an
    f-string never leaks the value.

    Example:
        >>> with SecureString("eyJhbGciOi...") as token:
        ...     headers = {"Authorization": token.bearer()}
    """

    def __init__(self, value: str):
        self._buffer: Optional[bytearray] = bytearray(value.encode("utf-8"))

    @classmethod
    def coerce(cls, value: Union[str, "SecureString", None]) -> Optional["SecureString"]:
        """Wrap a plain string; SecureString and None pass through unchanged."""
        if value is None or isinstance(value, SecureString):
            return value
        return cls(value)

    def __str__(self) -> str:
        return "[REDACTED]"

    def __repr__(self) -> str:
        return "SecureString([REDACTED])"

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.clear()
        return False

    def get_value(self) -> str:
        """
        Raises:
            ValueError: If the value has been cleared
        """
        if self._buffer is None:
            raise ValueError("SecureString value has been cleared")
        return self._buffer.decode("utf-8")

    def bearer(self) -> str:
        """Authorization header value for this token."""
        return f"Bearer {self.get_value()}"

    def clear(self):
        """Overwrite and drop the value. Idempotent."""
        if self._buffer is not None:
            for i in range(len(self._buffer)):
                self._buffer[i] = 0
            self._buffer = None

    def is_cleared(self) -> bool:
        return self._buffer is None


class OutputRedactor:
    """
    Replaces known secret values in text with [REDACTED].

    Example:
        >>> redactor = OutputRedactor([SecureString("secret123")])
        >>> redactor.redact("Authorization: Bearer secret123")
        'Authorization: Bearer [REDACTED]'
    """

    PLACEHOLDER = "[REDACTED]"

    def __init__(self, secrets: Optional[Iterable[SecureString]] = None):
        self.sensitive_values: List[str] = []
        for secret in secrets or ():
            self.add(secret)

    def add(self, secret: SecureString):
        """Register a secret. Cleared secrets are ignored."""
        if secret.is_cleared():
            return
        value = secret.get_value()
        if value and value not in self.sensitive_values:
            self.sensitive_values.append(value)
            # longest first so a secret containing another is replaced whole
            self.sensitive_values.sort(key=len, reverse=True)

    def redact(self, text: str) -> str:
        """Replace every occurrence of a registered secret (exact, case-sensitive)."""
        if not text:
            return text
        for value in self.sensitive_values:
            text = text.replace(value, self.PLACEHOLDER)
        return text

    def clear(self):
        self.sensitive_values.clear()
