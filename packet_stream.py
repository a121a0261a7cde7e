"""
Packet framing for decompressed game-message streams.

Keyed-section ("GameMessages") streams use

    [len:1][id:1][payload:len] <pad to 4-byte boundary>

where alignment is relative to the start of the stream, and a zero length
byte starts a run of zero padding. The order matters: padding is skipped
right after a payload, before the next length byte is read.

Legacy streams use unaligned [id:1][len:u32 LE][payload:len] records.
"""

import logging
from dataclasses import dataclass
from typing import Iterator, List

from byte_cursor import Buffer, ByteCursor
from message_names import message_name
from replay_errors import TruncatedPacket

logger = logging.getLogger(__name__)

PACKET_ALIGNMENT = 4
RECORD_HEADER_SIZE = 5
MAX_RECORD_LENGTH = 100000


@dataclass(frozen=True)
class Packet:
    offset: int  # stream-relative offset of the length (or id) byte
    id: int
    length: int
    payload: bytes

    @property
    def name(self) -> str:
        return message_name(self.id)

    def to_dict(self, hex_limit: int = 64) -> dict:
        return {
            'offset': self.offset,
            'id': self.id,
            'name': self.name,
            'length': self.length,
            'payload': self.payload[:hex_limit].hex(),
            'payload_truncated': self.length > hex_limit,
        }


class PacketStreamFramer:
    """Lazily frames a message stream into Packets.

    Each iteration starts again from offset 0. A stream that ends inside a
    packet raises TruncatedPacket once every complete packet before it has
    been yielded.
    """

    def __init__(self, data: Buffer):
        self.data = data

    def __iter__(self) -> Iterator[Packet]:
        cursor = ByteCursor(self.data)
        count = 0
        while cursor.remaining() >= 2:
            start = cursor.tell()
            length = cursor.read_u8()
            if length == 0:
                while not cursor.at_end() and cursor.peek_bytes(1) == b'\x00':
                    cursor.skip(1)
                continue

            msg_id = cursor.read_u8()
            if cursor.remaining() < length:
                raise TruncatedPacket(f"Packet id {msg_id} cut off by end of stream", offset=start,
                                      expected=length, actual=cursor.remaining())
            payload = cursor.read_bytes(length)
            count += 1
            yield Packet(offset=start, id=msg_id, length=length, payload=payload)

            misalign = cursor.tell() % PACKET_ALIGNMENT
            if misalign:
                cursor.skip(min(PACKET_ALIGNMENT - misalign, cursor.remaining()))

        logger.debug("Framed %d packets from %d-byte stream", count, len(self.data))


def frame_packets(data: Buffer) -> List[Packet]:
    return list(PacketStreamFramer(data))


def iter_records(data: Buffer, start: int = 0, max_length: int = MAX_RECORD_LENGTH) -> Iterator[Packet]:
    """Frame legacy [id:1][len:u32][payload] records starting at `start`."""
    cursor = ByteCursor(data, start)
    while cursor.remaining() >= RECORD_HEADER_SIZE:
        offset = cursor.tell()
        msg_id = cursor.read_u8()
        length = cursor.read_u32_le()
        if length > max_length or length > cursor.remaining():
            raise TruncatedPacket(f"Abnormal length for record id {msg_id}", offset=offset,
                                  expected=length, actual=cursor.remaining())
        yield Packet(offset=offset, id=msg_id, length=length, payload=cursor.read_bytes(length))
