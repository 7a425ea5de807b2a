# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
File format detector

This module identifies which decoder handles a file by looking at the
signature bytes at its start. File extensions are not consulted.

Copyright 2025 DNAi inc.
"""

from enum import Enum
from typing import Dict


class FileTypeId(Enum):
    """Formats with a decoder, plus the unknown fallback."""
    UNKNOWN = 'unknown'
    JPEG = 'jpeg'
    TIFF = 'tiff'
    MP3 = 'mp3'
    MIDI = 'midi'
    MPEG4 = 'mpeg4'


class FormatDetector:
    """
    Detects file formats from file signatures.
    """

    # Number of leading bytes the signatures need
    HEADER_SIZE = 32

    # Signatures anchored at offset 0
    FORMAT_SIGNATURES: Dict[bytes, FileTypeId] = {
        b'\xff\xd8\xff': FileTypeId.JPEG,
        b'II*\x00': FileTypeId.TIFF,
        b'MM\x00*': FileTypeId.TIFF,
        b'MThd': FileTypeId.MIDI,
    }

    # Box types that may open an ISO Base Media file (at offset 4)
    MP4_BOX_TYPES = (b'ftyp', b'moov', b'mdat', b'free', b'skip', b'wide')

    @classmethod
    def detect(cls, header: bytes) -> FileTypeId:
        """
        Detect the file type from its leading bytes.

        Args:
            header: The first bytes of the file (HEADER_SIZE is enough)

        Returns:
            The detected type, FileTypeId.UNKNOWN if no signature matches
        """
        if cls.is_id3(header):
            return FileTypeId.MP3

        for signature, file_type in cls.FORMAT_SIGNATURES.items():
            if header.startswith(signature):
                return file_type

        if len(header) >= 8 and header[4:8] in cls.MP4_BOX_TYPES:
            return FileTypeId.MPEG4

        return FileTypeId.UNKNOWN

    @staticmethod
    def is_id3(header: bytes) -> bool:
        """ID3v2 magic with a major version of 2-4 and a valid minor version."""
        return (
            len(header) >= 5
            and header.startswith(b'ID3')
            and 2 <= header[3] <= 4
            and header[4] != 0xFF
        )
