# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
Hex and ASCII dump formatter

Produces 16-bytes-per-line dumps used for opaque or undecoded regions:

    0000: 49 44 33 03 00 00 00 00  02 01   ID3····· ··

Copyright 2025 DNAi inc.
"""

from typing import List

BYTES_PER_LINE = 16
NON_PRINTABLE = '·'


def format_dump(display_offset: int, buffer: bytes, offset: int = 0, length: int = -1) -> List[str]:
    """
    Format a region of a buffer as hex dump lines.
    
    Args:
        display_offset: Offset printed for the first line
        buffer: Source bytes
        offset: Start of the region within buffer
        length: Length of the region (-1 for the rest of the buffer)
        
    Returns:
        List of dump lines without line terminators
    """
    if length < 0:
        length = len(buffer) - offset
    length = max(0, min(length, len(buffer) - offset))
    
    lines = []
    for ln in range(0, length, BYTES_PER_LINE):
        count = min(length - ln, BYTES_PER_LINE)
        chunk = buffer[offset + ln:offset + ln + count]
        
        parts = [f"{display_offset + ln:04x}: "]
        for i, b in enumerate(chunk):
            parts.append(f"{b:02x} ")
            if i == 7:
                parts.append(" ")
        
        # Align the text column with the lines above
        if ln > 0 and count < BYTES_PER_LINE:
            parts.append(' ' * ((BYTES_PER_LINE - count) * 3 + (1 if count < 8 else 0)))
        
        parts.append("  ")
        for i, b in enumerate(chunk):
            parts.append(chr(b) if 0x20 <= b < 0x7F else NON_PRINTABLE)
            if i == 7:
                parts.append(" ")
        
        lines.append(''.join(parts))
    return lines
