"""
Keyed-section replay container (base64 + raw deflate).

The decompressed buffer is a loose sequence of NUL-terminated ASCII keys,
each followed by its value. Binary blobs such as "GameMessages" use:

    key \\0 | type:1 | length:u32 LE | body[length]

Settings are `key \\0 | int32 LE`, player ids `key \\0 | 8 bytes`, and the
Deck0/Deck1 blobs `key \\0 | length:u32 LE | base64 text` with no type byte.

Keys are not aligned to anything, so sections are located with a
byte-granular scan rather than a structured field walk.
"""

import base64
import binascii
import logging
import struct
import zlib
from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional, Union

from byte_cursor import ByteCursor
from decode_options import DEFAULT_OPTIONS, DecodeOptions
from replay_errors import (
    DecompressionFailed,
    InvalidEncoding,
    SectionLengthOverflow,
    SectionNotFound,
)

logger = logging.getLogger(__name__)


def decode_base64(text: Union[str, bytes], *, strict: bool = True) -> bytes:
    """Decode the base64 envelope, ignoring surrounding and embedded whitespace."""
    if isinstance(text, str):
        try:
            text = text.encode('ascii')
        except UnicodeEncodeError as e:
            raise InvalidEncoding(f"Base64 text contains non-ASCII characters: {e}") from None
    compact = b''.join(bytes(text).split())
    if len(compact) % 4 and not compact.endswith(b'='):
        compact += b'=' * (-len(compact) % 4)
    try:
        return base64.b64decode(compact, validate=strict)
    except (binascii.Error, ValueError) as e:
        raise InvalidEncoding(f"Malformed base64: {e}", actual=len(compact)) from None


def inflate_raw(data: bytes) -> bytes:
    """Decompress a headerless deflate stream."""
    decompressor = zlib.decompressobj(-zlib.MAX_WBITS)
    try:
        out = decompressor.decompress(data) + decompressor.flush()
    except zlib.error as e:
        raise DecompressionFailed(f"Raw deflate stream is invalid: {e}", actual=len(data)) from None
    if not decompressor.eof:
        raise DecompressionFailed("Raw deflate stream is truncated", actual=len(data))
    return out


@dataclass(frozen=True)
class Section:
    """A named byte range inside the decompressed buffer."""
    key: str
    offset: int
    length: int
    type_byte: int
    buffer: bytes = field(repr=False, compare=False)

    @property
    def data(self) -> bytes:
        return self.buffer[self.offset:self.offset + self.length]

    def view(self) -> memoryview:
        """Zero-copy view of the body."""
        return memoryview(self.buffer)[self.offset:self.offset + self.length]

    def to_dict(self) -> dict:
        return {
            'key': self.key,
            'offset': self.offset,
            'length': self.length,
            'type_byte': self.type_byte,
        }


PLAYER_KEYS = ('Player0', 'Player1')
PLAYER_ID_SIZE = 8
DECK_KEYS = ('Deck0', 'Deck1')
MAX_DECK_BLOB = 10000


@dataclass(frozen=True)
class GameSettings:
    region: int = 0
    master_rule: int = 5
    mode: int = 1
    start_hand: int = 5
    draw_count: int = 1
    timer: int = 180
    start_lp: int = 8000
    duel_rule: int = 0
    is_public: bool = False
    extra_rule: Optional[int] = None
    budget: Optional[int] = None


@dataclass
class KeyedContainer:
    buffer: bytes
    sections: Dict[str, Section] = field(default_factory=dict)

    def __contains__(self, key: str) -> bool:
        return key in self.sections

    def section(self, key: str) -> Section:
        try:
            return self.sections[key]
        except KeyError:
            raise SectionNotFound(key) from None

    def find_key(self, key: str, start: int = 0) -> int:
        """Offset of `key\\0` in the buffer, or -1."""
        return self.buffer.find(key.encode('ascii') + b'\x00', start)

    def scalar_int32(self, key: str, default: Optional[int] = None, start: int = 0) -> Optional[int]:
        """Read the int32 LE that directly follows a NUL-terminated key.

        Settings such as StartLP or Timer are stored this way. Returns
        `default` if the key is absent or the value is cut off.
        """
        offset = self.find_key(key, start)
        if offset == -1:
            return default
        value_offset = offset + len(key) + 1
        if value_offset + 4 > len(self.buffer):
            return default
        return struct.unpack_from('<i', self.buffer, value_offset)[0]

    def scalar_byte(self, key: str, default: Optional[int] = None, start: int = 0) -> Optional[int]:
        offset = self.find_key(key, start)
        if offset == -1:
            return default
        value_offset = offset + len(key) + 1
        if value_offset >= len(self.buffer):
            return default
        return self.buffer[value_offset]

    def game_settings(self) -> 'GameSettings':
        """Named duel settings, falling back to the usual defaults when absent."""
        return GameSettings(
            region=self.scalar_int32('Region', 0),
            master_rule=self.scalar_int32('MasterRule', 5),
            mode=self.scalar_int32('Mode', 1),
            start_hand=self.scalar_int32('StartHand', 5),
            draw_count=self.scalar_int32('DrawCount', 1),
            timer=self.scalar_int32('Timer', 180),
            start_lp=self.scalar_int32('StartLP', 8000),
            duel_rule=self.scalar_int32('DuelRule', 0),
            is_public=bool(self.scalar_byte('IsPublic', 0)),
            extra_rule=self.scalar_int32('ExtraRule'),
            budget=self.scalar_int32('Budget'),
        )

    def player_ids(self) -> Dict[str, Optional[str]]:
        """Hex of the 8-byte id after each PlayerN key (None if absent or cut off)."""
        ids = {}
        for key in PLAYER_KEYS:
            offset = self.find_key(key)
            value_offset = offset + len(key) + 1
            if offset == -1 or value_offset + PLAYER_ID_SIZE > len(self.buffer):
                ids[key] = None
            else:
                ids[key] = self.buffer[value_offset:value_offset + PLAYER_ID_SIZE].hex()
        return ids

    def deck_blob(self, key: str) -> Optional[str]:
        """Base64 deck text stored as `key\\0 | length:u32 | text`.

        Deck blobs have no type byte, unlike sections. Returns None if the key
        is absent or the length is zero, above MAX_DECK_BLOB or past the end.
        """
        offset = self.find_key(key)
        if offset == -1:
            return None
        length_offset = offset + len(key) + 1
        if length_offset + 4 > len(self.buffer):
            return None
        length = struct.unpack_from('<I', self.buffer, length_offset)[0]
        start = length_offset + 4
        if length == 0 or length > MAX_DECK_BLOB or start + length > len(self.buffer):
            logger.debug("Ignoring %s blob with length %d at %d", key, length, offset)
            return None
        return self.buffer[start:start + length].decode('ascii', errors='replace')


class KeyedSectionContainerDecoder:
    """Decodes a keyed-section container into a KeyedContainer."""

    def __init__(self, options: Optional[DecodeOptions] = None):
        self.options = options or DEFAULT_OPTIONS
        self._keys = {key.encode('ascii'): key for key in self.options.section_keys}

    def decode(self, data: Union[str, bytes]) -> KeyedContainer:
        """Decode base64 text (str) or raw deflate bytes."""
        if isinstance(data, str):
            return self.decode_base64(data)
        return self.decode_raw(data)

    def decode_base64(self, text: Union[str, bytes]) -> KeyedContainer:
        return self.decode_raw(decode_base64(text, strict=self.options.strict_base64))

    def decode_raw(self, compressed: bytes) -> KeyedContainer:
        buffer = inflate_raw(bytes(compressed))
        logger.debug("Inflated keyed container: %d -> %d bytes", len(compressed), len(buffer))
        return self.scan(buffer)

    def scan(self, buffer: bytes) -> KeyedContainer:
        """Locate every known section in an already decompressed buffer."""
        container = KeyedContainer(buffer=buffer)
        for section in self.iter_sections(buffer):
            if section.key in container.sections:
                logger.debug("Ignoring repeated section %r at %d", section.key, section.offset)
                continue
            container.sections[section.key] = section
        return container

    def iter_sections(self, buffer: bytes) -> Iterator[Section]:
        cursor = ByteCursor(buffer)
        window = self.options.key_window
        while not cursor.at_end():
            start = cursor.tell()
            candidate = cursor.peek_bytes(min(window, cursor.remaining()))
            nul = candidate.find(b'\x00')
            key = self._keys.get(candidate[:nul]) if nul > 0 else None
            if key is None:
                cursor.skip(1)
                continue
            section = self._read_section(cursor, key, nul)
            logger.debug("Found section %r at %d (%d bytes, type byte 0x%02x)",
                         key, start, section.length, section.type_byte)
            yield section

    def _read_section(self, cursor: ByteCursor, key: str, key_length: int) -> Section:
        start = cursor.tell()
        header_length = key_length + 1 + 1 + 4
        if cursor.remaining() < header_length:
            raise SectionLengthOverflow(f"Section {key!r} header runs past end of buffer", offset=start,
                                        expected=header_length, actual=cursor.remaining())
        cursor.skip(key_length + 1)
        type_byte = cursor.read_u8()
        length = cursor.read_u32_le()
        if length > cursor.remaining():
            raise SectionLengthOverflow(f"Section {key!r} body runs past end of buffer", offset=cursor.tell(),
                                        expected=length, actual=cursor.remaining())
        offset = cursor.tell()
        cursor.skip(length)
        return Section(key=key, offset=offset, length=length, type_byte=type_byte, buffer=cursor.data)
