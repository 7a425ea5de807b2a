# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
Core MetaProbe class

This module ties the signature sniffer to the format decoders. It reads
each file into memory, picks the decoder for its type, and reports
per-file failures without stopping a batch.

Copyright 2025 DNAi inc.
"""

import glob
import logging
from pathlib import Path
from typing import Iterable, List, Optional, Union

from metaprobe.byte_range import ByteRange
from metaprobe.config import ProbeConfig
from metaprobe.exceptions import MetaProbeError, UnsupportedFormatError
from metaprobe.exif_parser import ExifParser
from metaprobe.format_detector import FileTypeId, FormatDetector
from metaprobe.id3_parser import Id3Parser
from metaprobe.midi_parser import MidiParser
from metaprobe.mp4_parser import Mp4Parser
from metaprobe.output import ProbeOutput

logger = logging.getLogger(__name__)


class MetaProbe:
    """
    Main class for dumping the metadata of one or more files.

    Example:
        >>> probe = MetaProbe(ProbeOutput(sys.stdout), ProbeConfig(verbosity=1))
        >>> failures = probe.probe_files(['*.jpg', 'song.mp3'])
    """

    def __init__(self, output: Optional[ProbeOutput] = None, config: Optional[ProbeConfig] = None):
        """
        Initialize the probe.

        Args:
            output: Sink for the rendered text (defaults to stdout)
            config: Probe configuration
        """
        self.config = config or (output.config if output else ProbeConfig())
        self.output = output or ProbeOutput(config=self.config)

    def _decode(self, file_type: FileTypeId, data: ByteRange) -> None:
        if file_type == FileTypeId.JPEG:
            ExifParser(self.output, self.config).probe_jpeg(data)
        elif file_type == FileTypeId.TIFF:
            ExifParser(self.output, self.config).probe_tiff(data)
        elif file_type == FileTypeId.MP3:
            Id3Parser(self.output, self.config).probe(data)
        elif file_type == FileTypeId.MIDI:
            MidiParser(self.output, self.config).probe(data)
        elif file_type == FileTypeId.MPEG4:
            Mp4Parser(self.output, self.config).probe(data)
        else:
            raise UnsupportedFormatError("Unknown or unsupported file type.")

    def probe_data(self, data: Union[bytes, ByteRange]) -> bool:
        """
        Sniff and decode an in-memory file.

        Returns:
            True if the file was decoded, False on an unknown type or a
            decoder failure (the failure is written to the output)
        """
        if not isinstance(data, ByteRange):
            data = ByteRange(data)

        file_type = FormatDetector.detect(data.read(0, min(len(data), FormatDetector.HEADER_SIZE)))
        self.output.line(f"FileType: {file_type.value}")

        try:
            self._decode(file_type, data)
        except MetaProbeError as e:
            logger.warning("Probe failed: %s", e.describe())
            self.output.line(f"Error: {e.describe()}")
            return False
        return True

    def probe_file(self, file_path: Union[str, Path]) -> bool:
        """Read a file fully into memory and decode it."""
        try:
            data = ByteRange.from_file(str(file_path))
        except OSError as e:
            logger.warning("Cannot read %s: %s", file_path, e)
            self.output.line(f"Error: {e}")
            return False
        return self.probe_data(data)

    @staticmethod
    def expand_patterns(patterns: Iterable[str]) -> List[List[str]]:
        """Expand each pattern to its sorted matches (a literal path matches itself)."""
        expanded = []
        for pattern in patterns:
            if glob.has_magic(pattern):
                expanded.append(sorted(glob.glob(pattern)))
            else:
                expanded.append([pattern])
        return expanded

    def probe_files(self, patterns: Iterable[str]) -> int:
        """
        Decode every file matched by the patterns, one at a time.

        Returns:
            Number of files that failed, including patterns matching nothing
        """
        failures = 0
        first = True
        patterns = list(patterns)
        for pattern, paths in zip(patterns, self.expand_patterns(patterns)):
            if not paths:
                logger.warning("No files match %s", pattern)
                self.output.line(f"No files match: {pattern}")
                failures += 1
                continue
            for path in paths:
                if not first:
                    self.output.blank()
                first = False
                self.output.line(f"File: {path}")
                if not self.probe_file(path):
                    failures += 1
        return failures


def probe_data(data: Union[bytes, ByteRange], output: Optional[ProbeOutput] = None,
               config: Optional[ProbeConfig] = None) -> bool:
    """Sniff and decode an in-memory file; see MetaProbe.probe_data."""
    return MetaProbe(output, config).probe_data(data)


def probe_file(file_path: Union[str, Path], output: Optional[ProbeOutput] = None,
               config: Optional[ProbeConfig] = None) -> bool:
    return MetaProbe(output, config).probe_file(file_path)


def probe_files(patterns: Iterable[str], output: Optional[ProbeOutput] = None,
                config: Optional[ProbeConfig] = None) -> int:
    return MetaProbe(output, config).probe_files(patterns)
