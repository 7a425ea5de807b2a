# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
Line-oriented text sink

Every decoder writes through a ProbeOutput. It keeps the current
indentation for nested structures (three spaces per level) and renders
raw byte regions with the hex dump formatter.

Copyright 2025 DNAi inc.
"""

import sys
from contextlib import contextmanager
from typing import Iterator, Optional, TextIO

from metaprobe.config import ProbeConfig
from metaprobe.hex_dump import format_dump

INDENT = '   '


class ProbeOutput:
    """
    Append-only text sink with indentation.
    """
    
    def __init__(self, stream: Optional[TextIO] = None, config: Optional[ProbeConfig] = None):
        """
        Initialize the sink.
        
        Args:
            stream: Text stream to write to (defaults to sys.stdout)
            config: Probe configuration (for the dump size cap)
        """
        self.stream = stream if stream is not None else sys.stdout
        self.config = config or ProbeConfig()
        self.level = 0
    
    @property
    def indent(self) -> str:
        return INDENT * self.level
    
    def line(self, text: str = "") -> None:
        """Write one line at the current indentation."""
        if text:
            self.stream.write(f"{self.indent}{text}\n")
        else:
            self.stream.write("\n")
    
    def blank(self) -> None:
        self.stream.write("\n")
    
    def dump(self, display_offset: int, buffer: bytes, offset: int = 0, length: int = -1) -> None:
        """
        Write a hex dump of a buffer region.
        
        Dumps are written flush left regardless of indentation and are
        capped at config.max_dump_bytes.
        """
        if length < 0:
            length = len(buffer) - offset
        shown = min(length, self.config.max_dump_bytes)
        for dump_line in format_dump(display_offset, buffer, offset, shown):
            self.stream.write(dump_line + "\n")
        if shown < length:
            self.stream.write(f"... ({length - shown} more bytes)\n")
    
    @contextmanager
    def indented(self, levels: int = 1) -> Iterator['ProbeOutput']:
        """Context in which lines are written one or more levels deeper."""
        self.level += levels
        try:
            yield self
        finally:
            self.level -= levels
