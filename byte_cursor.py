"""
Bounds-checked little-endian reader over an in-memory byte buffer.
"""

import struct
from typing import Union

from replay_errors import InvalidOffset, OutOfBounds

Buffer = Union[bytes, bytearray, memoryview]

_U32 = struct.Struct('<I')
_I32 = struct.Struct('<i')


class ByteCursor:
    """Reads fixed-width values from `data`, tracking a relative position.

    No read is allowed past the end of the buffer, not even partially: a
    failed read raises OutOfBounds and leaves the position untouched.
    """

    def __init__(self, data: Buffer, pos: int = 0):
        self.data = data
        self.pos = 0
        if pos:
            self.seek(pos)

    def __len__(self) -> int:
        return len(self.data)

    def tell(self) -> int:
        return self.pos

    def remaining(self) -> int:
        return len(self.data) - self.pos

    def at_end(self) -> bool:
        return self.pos >= len(self.data)

    def _require(self, n: int):
        if n < 0:
            raise InvalidOffset("Negative read width", offset=self.pos, expected=n)
        if n > self.remaining():
            raise OutOfBounds("Read past end of buffer", offset=self.pos, expected=n, actual=self.remaining())

    def seek(self, offset: int) -> int:
        """Move to an absolute offset. Seeking exactly to the end is allowed."""
        if offset < 0 or offset > len(self.data):
            raise InvalidOffset("Seek outside buffer", offset=offset, actual=len(self.data))
        self.pos = offset
        return self.pos

    def skip(self, n: int) -> int:
        self._require(n)
        self.pos += n
        return self.pos

    def peek_bytes(self, n: int) -> bytes:
        self._require(n)
        return bytes(self.data[self.pos:self.pos + n])

    def read_bytes(self, n: int) -> bytes:
        out = self.peek_bytes(n)
        self.pos += n
        return out

    def read_u8(self) -> int:
        self._require(1)
        val = self.data[self.pos]
        self.pos += 1
        return val

    def read_u32_le(self) -> int:
        self._require(4)
        val = _U32.unpack_from(self.data, self.pos)[0]
        self.pos += 4
        return val

    def read_i32_le(self) -> int:
        self._require(4)
        val = _I32.unpack_from(self.data, self.pos)[0]
        self.pos += 4
        return val
