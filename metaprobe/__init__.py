# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
MetaProbe - Metadata structure dumper

Walks the metadata structures of JPEG/TIFF (EXIF, XMP), MP3 (ID3v2),
Standard MIDI and MP4/QuickTime files and renders every decoded field
as text. All parsing is done by reading the binary structures directly.

Copyright 2025 DNAi inc.
"""

__version__ = "0.1.0"
__author__ = "DNAi inc."

from metaprobe.byte_range import ByteRange
from metaprobe.config import ProbeConfig
from metaprobe.core import MetaProbe, probe_data, probe_file, probe_files
from metaprobe.exceptions import (
    InvalidHeaderError,
    MalformedStructureError,
    MetaProbeError,
    OutOfRangeError,
    TruncatedError,
    UnsupportedFormatError,
)
from metaprobe.format_detector import FileTypeId, FormatDetector
from metaprobe.output import ProbeOutput

__all__ = [
    'ByteRange',
    'ProbeConfig',
    'ProbeOutput',
    'MetaProbe',
    'probe_data',
    'probe_file',
    'probe_files',
    'FileTypeId',
    'FormatDetector',
    'MetaProbeError',
    'OutOfRangeError',
    'TruncatedError',
    'InvalidHeaderError',
    'MalformedStructureError',
    'UnsupportedFormatError',
]
