#!/usr/bin/env python3
"""
Duel Replay Decoder
Detects the container dialect of a replay, decompresses it and frames its
game-message stream into packets.

Usage: python replay_decoder.py <replay_file> [--json]
"""

import json
import logging
import os
import re
import struct
import sys
import zlib
from collections import Counter
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from decode_options import DEFAULT_OPTIONS, DecodeOptions, SizePolicy
from field_probe import probe_payload
from keyed_container import DECK_KEYS, GameSettings, KeyedSectionContainerDecoder, Section, decode_base64
from legacy_container import LegacyContainerDecoder, LegacyHeader, LegacyPreamble
from message_names import message_name
from packet_stream import Packet, PacketStreamFramer, iter_records
from replay_errors import ReplayFormatError, SectionNotFound, UnknownDialect

logger = logging.getLogger(__name__)

_BASE64_RE = re.compile(rb'^[A-Za-z0-9+/\s]+={0,2}\s*$')
_DEFLATE_PROBE_BYTES = 256


class Dialect(Enum):
    LEGACY = 'legacy'
    KEYED = 'keyed'


def looks_like_base64(data: bytes) -> bool:
    """Base64 alphabet only; padding may be missing but not a lone extra char."""
    if not data or not _BASE64_RE.match(data):
        return False
    return len(b''.join(data.split())) % 4 != 1


def _has_legacy_magic(data: bytes, options: DecodeOptions) -> bool:
    return len(data) >= 4 and struct.unpack_from('<I', data, 0)[0] in options.legacy_magics


def _inflates(data: bytes) -> bool:
    try:
        zlib.decompressobj(-zlib.MAX_WBITS).decompress(data[:_DEFLATE_PROBE_BYTES])
    except zlib.error:
        return False
    return True


def detect_dialect(data: Union[str, bytes], options: Optional[DecodeOptions] = None) -> Tuple[Dialect, bytes]:
    """Pick the container dialect from the leading bytes.

    Returns the dialect and the binary container to hand to its decoder
    (base64 envelopes are unwrapped here).
    """
    options = options or DEFAULT_OPTIONS
    if isinstance(data, str):
        data = data.encode('ascii', errors='replace')
    data = bytes(data)
    if not data:
        raise UnknownDialect("Empty replay buffer", offset=0, actual=0)

    if _has_legacy_magic(data, options):
        logger.debug("Detected legacy container (magic %s)", data[:4])
        return Dialect.LEGACY, data

    if looks_like_base64(data):
        binary = decode_base64(data, strict=options.strict_base64)
        if _has_legacy_magic(binary, options):
            logger.debug("Detected base64-wrapped legacy container")
            return Dialect.LEGACY, binary
        logger.debug("Detected base64 keyed-section container")
        return Dialect.KEYED, binary

    if _inflates(data):
        logger.debug("Detected raw-deflate keyed-section container")
        return Dialect.KEYED, data

    raise UnknownDialect("Neither a legacy header nor a keyed-section container",
                         offset=0, actual=len(data))


@dataclass
class DecodedReplay:
    dialect: Dialect
    message_buffer: bytes
    message_section: Optional[str] = None
    sections: Dict[str, Section] = field(default_factory=dict)
    header: Optional[LegacyHeader] = None
    preamble: Optional[LegacyPreamble] = None
    settings: Optional[GameSettings] = None
    player_ids: Dict[str, Optional[str]] = field(default_factory=dict)
    deck_blobs: Dict[str, Optional[str]] = field(default_factory=dict)
    size_policy: Optional[SizePolicy] = None
    failed_attempts: List[Tuple[SizePolicy, str]] = field(default_factory=list)
    container: Any = field(default=None, repr=False)

    def section(self, key: str) -> Section:
        try:
            return self.sections[key]
        except KeyError:
            raise SectionNotFound(key) from None

    def packets(self) -> PacketStreamFramer:
        """Framed packets of the message buffer (lazy, re-iterable)."""
        if self.message_section is not None and self.message_section not in self.sections:
            raise SectionNotFound(self.message_section)
        return PacketStreamFramer(self.message_buffer)

    def records(self, start: Optional[int] = None) -> Iterator[Packet]:
        """Legacy [id][len:u32] records of the message buffer.

        Starts after the preamble unless `start` is given.
        """
        if start is None:
            start = self.preamble.records_offset if self.preamble else 0
        return iter_records(self.message_buffer, start)

    def messages(self) -> List[Packet]:
        """The dialect's natural framing: records after the preamble, or packets."""
        if self.dialect is Dialect.LEGACY:
            return list(self.records())
        return list(self.packets()) if self.message_buffer else []

    def diagnostics(self) -> dict:
        return {
            'dialect': self.dialect.value,
            'size_policy': self.size_policy.value if self.size_policy else None,
            'failed_attempts': [(policy.value, reason) for policy, reason in self.failed_attempts],
            'message_bytes': len(self.message_buffer),
        }

    def to_json(self, include_packets: bool = False, *, hex_limit: int = 64) -> dict:
        result = {
            'diagnostics': self.diagnostics(),
            'header': self.header.to_dict() if self.header else None,
            'preamble': self.preamble.to_dict() if self.preamble else None,
            'settings': asdict(self.settings) if self.settings else None,
            'player_ids': self.player_ids,
            'deck_blobs': self.deck_blobs,
            'sections': {key: s.to_dict() for key, s in self.sections.items()},
        }
        packets = self.messages()
        result['packet_count'] = len(packets)
        result['packet_ids'] = {str(k): v for k, v in sorted(Counter(p.id for p in packets).items())}
        if include_packets:
            result['packets'] = [p.to_dict(hex_limit) for p in packets]
        return result


def decode_replay(data: Union[str, bytes], options: Optional[DecodeOptions] = None) -> DecodedReplay:
    """Decode one replay held in memory."""
    options = options or DEFAULT_OPTIONS
    dialect, binary = detect_dialect(data, options)

    if dialect is Dialect.LEGACY:
        legacy = LegacyContainerDecoder(options).decode(binary)
        return DecodedReplay(
            dialect=dialect,
            message_buffer=legacy.payload,
            header=legacy.header,
            preamble=LegacyPreamble.from_payload(legacy.payload, legacy.header.flags),
            size_policy=legacy.size_policy,
            failed_attempts=legacy.failed_attempts,
            container=legacy,
        )

    keyed = KeyedSectionContainerDecoder(options).decode_raw(binary)
    messages = keyed.sections.get(options.message_section)
    if messages is None:
        logger.warning("Keyed container has no %r section", options.message_section)
    return DecodedReplay(
        dialect=dialect,
        message_buffer=messages.data if messages else b'',
        message_section=options.message_section,
        sections=dict(keyed.sections),
        settings=keyed.game_settings(),
        player_ids=keyed.player_ids(),
        deck_blobs={key: keyed.deck_blob(key) for key in DECK_KEYS},
        container=keyed,
    )


def load_replay(path: str) -> bytes:
    with open(path, 'rb') as f:
        return f.read()


def report(replay: DecodedReplay, *, probe: int = 0, records_at: Optional[int] = None):
    """Print a human-readable summary of a decoded replay."""
    diag = replay.diagnostics()
    print(f"\n{'='*60}")
    print(f"Dialect: {diag['dialect']}")
    if replay.header:
        h = replay.header
        print(f"Magic: {h.magic_text}  Version: {h.version}  Flags: 0x{h.flags:x} {h.flag_names()}")
        print(f"Declared size: {h.data_size:,}  Props: {h.compression_props.hex()}")
        if h.compressed:
            print(f"Size policy: {diag['size_policy']}")
            for policy, reason in diag['failed_attempts']:
                print(f"  failed {policy}: {reason}")
    if replay.preamble:
        p = replay.preamble
        print(f"Players: {', '.join(p.player_names)} ({p.home_count} vs {p.away_count})")
        print(f"Start LP: {p.start_lp}  Hand: {p.start_hand}  Draw: {p.draw_count}  Duel flags: 0x{p.duel_flags:x}")
        for i, deck in enumerate(p.decks):
            print(f"  Deck {i}: {len(deck.main)} main, {len(deck.extra)} extra")
        print(f"Records start at: {p.records_offset}")
    if replay.settings:
        s = replay.settings
        print(f"Start LP: {s.start_lp}  Hand: {s.start_hand}  Draw: {s.draw_count}  "
              f"Timer: {s.timer}  Master rule: {s.master_rule}")
    for key, player_id in replay.player_ids.items():
        print(f"{key}: {player_id or '-'}")
    for key, blob in replay.deck_blobs.items():
        print(f"{key}: {f'{len(blob)} base64 chars' if blob else '-'}")
    for key, section in replay.sections.items():
        print(f"Section {key!r}: offset {section.offset}, {section.length:,} bytes, type 0x{section.type_byte:02x}")
    print(f"Message buffer: {diag['message_bytes']:,} bytes")
    print(f"{'='*60}")

    if records_at is not None:
        packets = list(replay.records(records_at))
    else:
        packets = replay.messages()

    print(f"\nPackets: {len(packets):,}")
    counts = Counter(p.id for p in packets)
    for msg_id, count in counts.most_common(20):
        print(f"  {msg_id:>3} {message_name(msg_id):<28} {count:>6,}")

    for packet in packets[:probe]:
        info = probe_payload(packet.payload)
        print(f"\n[{packet.offset}] id={packet.id} ({packet.name}) len={packet.length}")
        print(f"  hex:   {info['hex']}")
        print(f"  ascii: {info['ascii']}")
        print(f"  int32: {info['int32_le']}")


def main(argv=None):
    import argparse

    arg_parser = argparse.ArgumentParser(
        description='Decode duel replay containers (legacy .yrp/.yrpX or keyed-section base64)',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python replay_decoder.py replay.yrpX
  python replay_decoder.py omega_replay.txt --json --packets
  python replay_decoder.py omega_replay.txt --probe 10
  python replay_decoder.py replay.yrpX --records-at 1024
        """
    )
    arg_parser.add_argument('replay', help='Path to replay file (binary or base64 text)')
    arg_parser.add_argument('--json', action='store_true', help='Export decoded summary to JSON')
    arg_parser.add_argument('--output', '-o', help='Output JSON file path (default: <replay>_decoded.json)')
    arg_parser.add_argument('--packets', action='store_true', help='Include every packet in exported JSON')
    arg_parser.add_argument('--hex-limit', type=int, default=64,
                            help='Max payload bytes (as hex) per packet in JSON (default: 64)')
    arg_parser.add_argument('--quiet', '-q', action='store_true', help='Suppress console report')
    arg_parser.add_argument('--probe', type=int, default=0, metavar='N',
                            help='Print field-probe hypotheses for the first N packets')
    arg_parser.add_argument('--records-at', type=int, metavar='OFFSET',
                            help='Frame the message buffer as legacy [id][len:4] records from OFFSET '
                                 '(default: after the preamble)')
    arg_parser.add_argument('--section-key', action='append', default=[], metavar='KEY',
                            help='Additional section key to scan for (repeatable)')
    arg_parser.add_argument('--key-window', type=int, default=DEFAULT_OPTIONS.key_window,
                            help='Key scanning window in bytes (default: %(default)s)')
    arg_parser.add_argument('--unknown-size-first', action='store_true',
                            help='Try the unknown-size LZMA header before the declared size')
    arg_parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')

    args = arg_parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format='%(levelname)s %(name)s: %(message)s')

    if not os.path.exists(args.replay):
        print(f"Error: File not found: {args.replay}")
        sys.exit(1)

    try:
        options = DecodeOptions(key_window=args.key_window).with_keys(*args.section_key)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)
    if args.unknown_size_first:
        options = options.unknown_size_first()

    try:
        replay = decode_replay(load_replay(args.replay), options)
        if not args.quiet:
            report(replay, probe=args.probe, records_at=args.records_at)
        if args.json:
            json_path = args.output or args.replay.rsplit('.', 1)[0] + '_decoded.json'
            data = replay.to_json(include_packets=args.packets, hex_limit=args.hex_limit)
            with open(json_path, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2)
            print(f"\nExported {data['packet_count']:,} packets to: {json_path}")
    except ReplayFormatError as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
