# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
Probe configuration

Copyright 2025 DNAi inc.
"""

from typing import Any, Dict


class ProbeConfig:
    """
    Configuration shared by the driver and every decoder.
    
    The limits bound recursive and chained walks so that a crafted file
    with a self-referencing IFD chain or absurd box nesting cannot loop
    forever.
    """
    
    DEFAULT_MAX_IFD_COUNT = 64
    DEFAULT_MAX_BOX_DEPTH = 32
    DEFAULT_MAX_DUMP_BYTES = 4096
    
    def __init__(
        self,
        verbosity: int = 0,
        max_ifd_count: int = DEFAULT_MAX_IFD_COUNT,
        max_box_depth: int = DEFAULT_MAX_BOX_DEPTH,
        max_dump_bytes: int = DEFAULT_MAX_DUMP_BYTES,
    ):
        """
        Initialize configuration.
        
        Args:
            verbosity: 0 for the normal dump, >0 adds raw dumps and structural detail
            max_ifd_count: Maximum number of IFDs visited in one TIFF walk
            max_box_depth: Maximum MP4 box nesting depth
            max_dump_bytes: Maximum bytes rendered by a single hex dump
        """
        if max_ifd_count < 1:
            raise ValueError("max_ifd_count must be at least 1")
        if max_box_depth < 1:
            raise ValueError("max_box_depth must be at least 1")
        if max_dump_bytes < 0:
            raise ValueError("max_dump_bytes must not be negative")
        self.verbosity = verbosity
        self.max_ifd_count = max_ifd_count
        self.max_box_depth = max_box_depth
        self.max_dump_bytes = max_dump_bytes
    
    @property
    def verbose(self) -> bool:
        return self.verbosity > 0
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            'verbosity': self.verbosity,
            'max_ifd_count': self.max_ifd_count,
            'max_box_depth': self.max_box_depth,
            'max_dump_bytes': self.max_dump_bytes,
        }
