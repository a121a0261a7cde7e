"""
Error types raised while decoding replay containers.

Every error is a ValueError subclass so callers that only care about
"bad replay data" can catch ValueError, while tools that need to know which
dialect assumption broke can catch the specific class and read the offset /
expected / actual context.
"""

from typing import List, Optional, Tuple


class ReplayFormatError(ValueError):
    """Base class for malformed or unsupported replay data."""

    def __init__(
        self,
        message: str,
        *,
        offset: Optional[int] = None,
        expected: Optional[int] = None,
        actual: Optional[int] = None,
    ):
        self.offset = offset
        self.expected = expected
        self.actual = actual
        details = []
        if offset is not None:
            details.append(f"offset={offset}")
        if expected is not None:
            details.append(f"expected={expected}")
        if actual is not None:
            details.append(f"actual={actual}")
        if details:
            message = f"{message} ({', '.join(details)})"
        super().__init__(message)


class OutOfBounds(ReplayFormatError):
    """A read would go past the end of the buffer."""


class InvalidOffset(ReplayFormatError):
    """A seek target or width is outside the buffer."""


class TruncatedHeader(ReplayFormatError):
    """Buffer is shorter than the fixed container header."""


class TruncatedPayload(ReplayFormatError):
    """Compressed body is missing or shorter than the header implies."""


class TruncatedPacket(ReplayFormatError):
    """Message stream ended in the middle of a packet."""


class InvalidEncoding(ReplayFormatError):
    """Base64 envelope could not be decoded."""


class DecompressionFailed(ReplayFormatError):
    """The compression algorithm rejected the input.

    `attempts` holds one (label, reason) pair per attempt, e.g. one entry per
    LZMA size policy that was tried.
    """

    def __init__(self, message: str, *, attempts: Optional[List[Tuple[str, str]]] = None, **kwargs):
        self.attempts = list(attempts or [])
        if self.attempts:
            tried = '; '.join(f"{label}: {reason}" for label, reason in self.attempts)
            message = f"{message} [{tried}]"
        super().__init__(message, **kwargs)


class SectionNotFound(ReplayFormatError, KeyError):
    """Requested section key is absent from the keyed container."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Section not found: {key!r}")

    def __str__(self):
        # KeyError.__str__ would repr() the whole message
        return self.args[0]


class SectionLengthOverflow(ReplayFormatError):
    """Declared section length runs past the end of the decompressed buffer."""


class UnknownDialect(ReplayFormatError):
    """Input matches neither the legacy nor the keyed-section container."""
