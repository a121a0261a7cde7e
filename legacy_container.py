"""
Legacy fixed-header replay container (yrp1 / yrpX).

Layout of the 32-byte header (all little-endian u32 unless noted):

    0   magic       "yrp1" / "yrpX"
    4   version
    8   flags       bit 0 = payload is LZMA-compressed
    12  seed
    16  data_size   declared uncompressed size (advisory only)
    20  hash
    24  props       8 bytes; the first 5 are the LZMA properties

When REPLAY_EXTENDED_HEADER is set, 40 further header bytes follow before
the payload. Compressed payloads are raw LZMA bodies without the usual
13-byte .lzma header, so one is rebuilt here from `props` and a size field.

The decompressed payload opens with a preamble (player names, duel
parameters, decks; see LegacyPreamble) followed by [id][len:u32] records.
"""

import logging
import lzma
import struct
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from byte_cursor import ByteCursor
from decode_options import DEFAULT_OPTIONS, DecodeOptions, SizePolicy
from replay_errors import DecompressionFailed, OutOfBounds, TruncatedHeader, TruncatedPayload

logger = logging.getLogger(__name__)

REPLAY_COMPRESSED = 0x1
REPLAY_TAG = 0x2
REPLAY_DECODED = 0x4
REPLAY_SINGLE_MODE = 0x8
REPLAY_LUA64 = 0x10
REPLAY_NEWREPLAY = 0x20
REPLAY_HAND_TEST = 0x40
REPLAY_DIRECT_SEED = 0x80
REPLAY_64BIT_DUELFLAG = 0x100
REPLAY_EXTENDED_HEADER = 0x200

FLAG_NAMES = {
    REPLAY_COMPRESSED: 'COMPRESSED',
    REPLAY_TAG: 'TAG',
    REPLAY_DECODED: 'DECODED',
    REPLAY_SINGLE_MODE: 'SINGLE_MODE',
    REPLAY_LUA64: 'LUA64',
    REPLAY_NEWREPLAY: 'NEWREPLAY',
    REPLAY_HAND_TEST: 'HAND_TEST',
    REPLAY_DIRECT_SEED: 'DIRECT_SEED',
    REPLAY_64BIT_DUELFLAG: '64BIT_DUELFLAG',
    REPLAY_EXTENDED_HEADER: 'EXTENDED_HEADER',
}

LEGACY_HEADER_SIZE = 32
EXTENDED_HEADER_SIZE = 40
LZMA_PROPS_SIZE = 5
UNKNOWN_SIZE_WORD = 0xFFFFFFFF

# (lzma_header, compressed_body) -> decompressed bytes
Decompressor = Callable[[bytes, bytes], bytes]


def lzma_alone_decompress(header: bytes, body: bytes) -> bytes:
    """Decompress a .lzma ("alone") stream given its 13-byte header separately.

    Raises lzma.LZMAError if the stream is corrupt or ends before the
    decoder reaches end-of-stream.
    """
    decompressor = lzma.LZMADecompressor(format=lzma.FORMAT_ALONE)
    out = decompressor.decompress(header + body)
    if not decompressor.eof:
        raise lzma.LZMAError("Compressed data ended before the end of the stream")
    return out


def build_lzma_header(props: bytes, data_size: int, policy: SizePolicy) -> bytes:
    """Assemble `props[:5] + size field` for the given size policy."""
    if len(props) < LZMA_PROPS_SIZE:
        raise ValueError(f"LZMA properties need {LZMA_PROPS_SIZE} bytes, got {len(props)}")
    if policy is SizePolicy.DECLARED:
        size_field = struct.pack('<II', data_size, 0)
    else:
        size_field = struct.pack('<II', UNKNOWN_SIZE_WORD, UNKNOWN_SIZE_WORD)
    return bytes(props[:LZMA_PROPS_SIZE]) + size_field


@dataclass(frozen=True)
class LegacyHeader:
    magic: int
    version: int
    flags: int
    seed: int
    data_size: int
    hash: int
    props: bytes

    @classmethod
    def from_bytes(cls, data) -> 'LegacyHeader':
        if len(data) < LEGACY_HEADER_SIZE:
            raise TruncatedHeader("Buffer shorter than legacy header", offset=0,
                                  expected=LEGACY_HEADER_SIZE, actual=len(data))
        cursor = ByteCursor(data)
        return cls(
            magic=cursor.read_u32_le(),
            version=cursor.read_u32_le(),
            flags=cursor.read_u32_le(),
            seed=cursor.read_u32_le(),
            data_size=cursor.read_u32_le(),
            hash=cursor.read_u32_le(),
            props=cursor.read_bytes(8),
        )

    @property
    def compressed(self) -> bool:
        return bool(self.flags & REPLAY_COMPRESSED)

    @property
    def compression_props(self) -> bytes:
        return self.props[:LZMA_PROPS_SIZE]

    @property
    def header_length(self) -> int:
        if self.flags & REPLAY_EXTENDED_HEADER:
            return LEGACY_HEADER_SIZE + EXTENDED_HEADER_SIZE
        return LEGACY_HEADER_SIZE

    @property
    def magic_text(self) -> str:
        return struct.pack('<I', self.magic).decode('latin-1')

    def flag_names(self) -> List[str]:
        return [name for bit, name in FLAG_NAMES.items() if self.flags & bit]

    def to_dict(self) -> dict:
        return {
            'magic': self.magic_text,
            'version': self.version,
            'flags': self.flags,
            'flag_names': self.flag_names(),
            'seed': self.seed,
            'data_size': self.data_size,
            'hash': self.hash,
            'props': self.props.hex(),
            'header_length': self.header_length,
        }


@dataclass
class LegacyContainer:
    header: LegacyHeader
    payload: bytes
    size_policy: Optional[SizePolicy] = None  # None when stored uncompressed
    failed_attempts: List[Tuple[SizePolicy, str]] = field(default_factory=list)


PLAYER_NAME_SIZE = 40
MAX_PLAYERS_PER_SIDE = 20
MAX_DECK_CARDS = 1000


@dataclass
class Deck:
    main: List[int] = field(default_factory=list)
    extra: List[int] = field(default_factory=list)


@dataclass
class LegacyPreamble:
    """Player names, duel parameters and decks that precede the replay records.

    Layout (u32 LE unless noted):

        names       40-byte UTF-16LE slots; 2 in single mode, otherwise a
                    count per side (u32 with NEWREPLAY, 2 with TAG, else 1)
        start_lp, start_hand, draw_count
        duel_flags  u64 when REPLAY_64BIT_DUELFLAG is set
        decks       per player: main count, main ids, extra count, extra ids
    """
    player_names: List[str]
    home_count: int
    away_count: int
    start_lp: int
    start_hand: int
    draw_count: int
    duel_flags: int
    decks: List[Deck]
    records_offset: int

    @classmethod
    def from_payload(cls, payload, flags: int) -> 'LegacyPreamble':
        """Parse the preamble at the start of a decompressed legacy payload."""
        try:
            return cls._parse(ByteCursor(payload), flags)
        except OutOfBounds as e:
            raise TruncatedPayload("Legacy preamble runs past end of payload", offset=e.offset,
                                   expected=e.expected, actual=e.actual) from None

    @classmethod
    def _parse(cls, cursor: ByteCursor, flags: int) -> 'LegacyPreamble':
        names: List[str] = []
        if flags & REPLAY_SINGLE_MODE:
            names = [_read_name(cursor), _read_name(cursor)]
            home_count = away_count = 1
        else:
            home_count = _read_side(cursor, flags, names)
            away_count = _read_side(cursor, flags, names)

        start_lp = cursor.read_u32_le()
        start_hand = cursor.read_u32_le()
        draw_count = cursor.read_u32_le()
        duel_flags = cursor.read_u32_le()
        if flags & REPLAY_64BIT_DUELFLAG:
            duel_flags |= cursor.read_u32_le() << 32

        decks = [Deck(main=_read_card_list(cursor), extra=_read_card_list(cursor))
                 for _ in range(home_count + away_count)]
        logger.debug("Legacy preamble: %d players, records start at %d", len(names), cursor.tell())
        return cls(
            player_names=names,
            home_count=home_count,
            away_count=away_count,
            start_lp=start_lp,
            start_hand=start_hand,
            draw_count=draw_count,
            duel_flags=duel_flags,
            decks=decks,
            records_offset=cursor.tell(),
        )

    def to_dict(self) -> dict:
        return {
            'player_names': self.player_names,
            'home_count': self.home_count,
            'away_count': self.away_count,
            'start_lp': self.start_lp,
            'start_hand': self.start_hand,
            'draw_count': self.draw_count,
            'duel_flags': self.duel_flags,
            'decks': [{'main': d.main, 'extra': d.extra} for d in self.decks],
            'records_offset': self.records_offset,
        }


def _read_name(cursor: ByteCursor) -> str:
    raw = cursor.read_bytes(PLAYER_NAME_SIZE)
    return raw.decode('utf-16-le', errors='replace').split('\x00', 1)[0]


def _read_side(cursor: ByteCursor, flags: int, names: List[str]) -> int:
    if flags & REPLAY_NEWREPLAY:
        count = cursor.read_u32_le()
    elif flags & REPLAY_TAG:
        count = 2
    else:
        count = 1
    if count > MAX_PLAYERS_PER_SIDE:
        logger.warning("Player count %d exceeds %d, capping", count, MAX_PLAYERS_PER_SIDE)
        count = MAX_PLAYERS_PER_SIDE
    names.extend(_read_name(cursor) for _ in range(count))
    return count


def _read_card_list(cursor: ByteCursor) -> List[int]:
    count = cursor.read_u32_le()
    if count > MAX_DECK_CARDS:
        logger.warning("Deck count %d at offset %d exceeds %d, capping",
                       count, cursor.tell() - 4, MAX_DECK_CARDS)
        count = MAX_DECK_CARDS
    return [cursor.read_u32_le() for _ in range(count)]


class LegacyContainerDecoder:
    """Decodes a legacy container into its (decompressed) payload."""

    def __init__(self, options: Optional[DecodeOptions] = None, decompressor: Decompressor = lzma_alone_decompress):
        self.options = options or DEFAULT_OPTIONS
        self.decompressor = decompressor

    def decode(self, data) -> LegacyContainer:
        header = LegacyHeader.from_bytes(data)
        header_length = header.header_length
        if len(data) < header_length:
            raise TruncatedHeader("Buffer shorter than extended legacy header", offset=0,
                                  expected=header_length, actual=len(data))

        body = bytes(data[header_length:])
        if not header.compressed:
            logger.debug("Legacy replay stored uncompressed (%d payload bytes)", len(body))
            return LegacyContainer(header=header, payload=body)

        if not body:
            raise TruncatedPayload("Compressed legacy replay has no body", offset=header_length,
                                   expected=1, actual=0)

        failed: List[Tuple[SizePolicy, str]] = []
        for policy in self.options.size_policies:
            lzma_header = build_lzma_header(header.compression_props, header.data_size, policy)
            logger.debug("Trying LZMA size policy %s (header %s)", policy.value, lzma_header.hex())
            try:
                payload = self.decompressor(lzma_header, body)
            except (lzma.LZMAError, ValueError, EOFError) as e:
                failed.append((policy, str(e) or type(e).__name__))
                continue
            if policy is SizePolicy.DECLARED and len(payload) != header.data_size:
                failed.append((policy, f"got {len(payload)} bytes, header declares {header.data_size}"))
                continue
            if failed:
                logger.warning("LZMA size policy %s failed, %s succeeded",
                               failed[0][0].value, policy.value)
            return LegacyContainer(header=header, payload=payload, size_policy=policy,
                                   failed_attempts=failed)

        raise DecompressionFailed(
            "LZMA decompression failed under every size policy",
            attempts=[(policy.value, reason) for policy, reason in failed],
            offset=header_length,
        )
