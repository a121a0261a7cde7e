"""
Decode configuration shared by the container decoders.

Everything that used to be a module-level target constant in the analysis
scripts (which section to look for, which LZMA size policy to try first)
is passed into each decode call through DecodeOptions.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Tuple

# Legacy magic numbers ("yrp1" / "yrpX" read as little-endian u32)
REPLAY_YRP1 = 0x31707279
REPLAY_YRPX = 0x58707279

GAME_MESSAGES_KEY = 'GameMessages'
DEFAULT_KEY_WINDOW = 20


class SizePolicy(Enum):
    """How the 8-byte size field of a rebuilt LZMA header is filled."""
    DECLARED = 'declared'  # header data_size as a 64-bit LE value
    UNKNOWN = 'unknown'    # 0xFFFFFFFF sentinel in both words


@dataclass(frozen=True)
class DecodeOptions:
    section_keys: Tuple[str, ...] = (GAME_MESSAGES_KEY,)
    message_section: str = GAME_MESSAGES_KEY
    key_window: int = DEFAULT_KEY_WINDOW
    size_policies: Tuple[SizePolicy, ...] = (SizePolicy.DECLARED, SizePolicy.UNKNOWN)
    legacy_magics: Tuple[int, ...] = (REPLAY_YRP1, REPLAY_YRPX)
    strict_base64: bool = True

    def __post_init__(self):
        if self.key_window < 2:
            raise ValueError(f"key_window must be at least 2, got {self.key_window}")
        if not self.size_policies:
            raise ValueError("size_policies must not be empty")
        if len(set(self.size_policies)) != len(self.size_policies):
            raise ValueError("size_policies must not repeat a policy")
        if len(self.size_policies) > 2:
            raise ValueError("at most two size policies may be attempted")
        for key in self.section_keys:
            if not key or len(key.encode('ascii')) > self.key_window - 1:
                raise ValueError(f"section key {key!r} does not fit in a {self.key_window}-byte window")
        if self.message_section not in self.section_keys:
            raise ValueError(f"message_section {self.message_section!r} is not one of section_keys")

    def with_keys(self, *keys: str) -> 'DecodeOptions':
        """Return a copy that also scans for `keys`."""
        merged = tuple(dict.fromkeys(self.section_keys + tuple(keys)))
        return replace(self, section_keys=merged)

    def unknown_size_first(self) -> 'DecodeOptions':
        return replace(self, size_policies=(SizePolicy.UNKNOWN, SizePolicy.DECLARED))


DEFAULT_OPTIONS = DecodeOptions()
