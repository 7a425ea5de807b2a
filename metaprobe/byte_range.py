# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
Bounded byte-access primitives

This module provides ByteRange, a read-only window over a byte buffer.
Every decoder reads through a ByteRange so that no structure can read
past the bytes it was given: a read that leaves the window raises
OutOfRangeError (or TruncatedError) instead of touching adjacent data.

Integer readers take the struct byte-order prefix ('<' little-endian,
'>' big-endian) per call, so one range can serve both a big-endian box
header and a little-endian payload.

Copyright 2025 DNAi inc.
"""

import struct
from typing import Optional, Union

from metaprobe.exceptions import OutOfRangeError, TruncatedError

BytesLike = Union[bytes, bytearray, memoryview]

LITTLE_ENDIAN = '<'
BIG_ENDIAN = '>'


class ByteRange:
    """
    Read-only view (start, length) over an underlying byte buffer.
    
    Offsets passed to the read methods are relative to the start of the
    range. Narrower ranges for nested structures are produced with
    sub_range() and share the same buffer.
    """
    
    def __init__(self, data: BytesLike, start: int = 0, length: Optional[int] = None):
        """
        Initialize a byte range.
        
        Args:
            data: Underlying buffer
            start: Offset of the range within the buffer
            length: Length of the range (defaults to the rest of the buffer)
            
        Raises:
            OutOfRangeError: If start is outside the buffer
            TruncatedError: If the buffer holds fewer than length bytes after start
        """
        total = len(data)
        if start < 0 or start > total:
            raise OutOfRangeError(f"Range start {start} outside buffer of {total} bytes")
        if length is None:
            length = total - start
        if length < 0:
            raise OutOfRangeError(f"Negative range length {length}")
        if start + length > total:
            raise TruncatedError(
                f"Range of {length} bytes at {start} exceeds buffer of {total} bytes"
            )
        self._data = data
        self.start = start
        self.length = length
    
    @classmethod
    def from_file(cls, file_path: str) -> 'ByteRange':
        """Read a whole file into memory and wrap it."""
        with open(file_path, 'rb') as f:
            return cls(f.read())
    
    def __len__(self) -> int:
        return self.length
    
    def __repr__(self) -> str:
        return f"ByteRange(start={self.start}, length={self.length})"
    
    def abs_offset(self, offset: int = 0) -> int:
        """Map a range-relative offset to its position in the underlying buffer."""
        return self.start + offset
    
    def _check(self, offset: int, count: int) -> None:
        if offset < 0 or count < 0 or offset > self.length:
            raise OutOfRangeError(
                f"Offset {offset} outside range of {self.length} bytes"
            )
        if offset + count > self.length:
            raise TruncatedError(
                f"Read of {count} bytes at offset {offset} exceeds range of {self.length} bytes"
            )
    
    def read(self, offset: int, count: int) -> bytes:
        """
        Read count bytes at offset.
        
        Raises:
            OutOfRangeError: If offset is outside the range
            TruncatedError: If fewer than count bytes remain after offset
        """
        self._check(offset, count)
        begin = self.start + offset
        return bytes(self._data[begin:begin + count])
    
    def to_bytes(self) -> bytes:
        """Return a copy of the whole range."""
        return bytes(self._data[self.start:self.start + self.length])
    
    def sub_range(self, offset: int, length: int) -> 'ByteRange':
        """
        Return a narrower range for a nested structure.
        
        Raises:
            OutOfRangeError: If offset is outside this range
            TruncatedError: If the nested range would extend past this range
        """
        self._check(offset, length)
        return ByteRange(self._data, self.start + offset, length)
    
    def tail(self, offset: int) -> 'ByteRange':
        """Return the range from offset to the end of this range."""
        self._check(offset, 0)
        return self.sub_range(offset, self.length - offset)
    
    def remaining(self, offset: int) -> int:
        """Number of bytes from offset to the end of the range (never negative)."""
        return max(0, self.length - offset)
    
    def matches(self, offset: int, signature: bytes) -> bool:
        """Test whether the bytes at offset equal signature. Never raises."""
        if offset < 0 or offset + len(signature) > self.length:
            return False
        begin = self.start + offset
        return bytes(self._data[begin:begin + len(signature)]) == signature
    
    def _unpack(self, fmt: str, offset: int, endian: str) -> int:
        size = struct.calcsize(fmt)
        return struct.unpack(f'{endian}{fmt}', self.read(offset, size))[0]
    
    def uint8(self, offset: int) -> int:
        return self.read(offset, 1)[0]
    
    def int8(self, offset: int) -> int:
        return self._unpack('b', offset, BIG_ENDIAN)
    
    def uint16(self, offset: int, endian: str = BIG_ENDIAN) -> int:
        return self._unpack('H', offset, endian)
    
    def int16(self, offset: int, endian: str = BIG_ENDIAN) -> int:
        return self._unpack('h', offset, endian)
    
    def uint32(self, offset: int, endian: str = BIG_ENDIAN) -> int:
        return self._unpack('I', offset, endian)
    
    def int32(self, offset: int, endian: str = BIG_ENDIAN) -> int:
        return self._unpack('i', offset, endian)
    
    def uint64(self, offset: int, endian: str = BIG_ENDIAN) -> int:
        return self._unpack('Q', offset, endian)
    
    def int64(self, offset: int, endian: str = BIG_ENDIAN) -> int:
        return self._unpack('q', offset, endian)
    
    def string(self, offset: int, count: int, encoding: str = 'latin-1') -> str:
        """Decode exactly count bytes at offset (no terminator handling)."""
        return self.read(offset, count).decode(encoding, errors='replace')
    
    def cstring(self, offset: int, max_len: int, encoding: str = 'latin-1') -> str:
        """
        Decode a null-terminated string of at most max_len bytes.
        
        The cap is clipped to the end of the range, so a string running
        into the end of the range is returned without its terminator.
        """
        self._check(offset, 0)
        max_len = min(max_len, self.length - offset)
        raw = self.read(offset, max_len)
        end = raw.find(b'\x00')
        if end >= 0:
            raw = raw[:end]
        return raw.decode(encoding, errors='replace')
