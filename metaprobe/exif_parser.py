# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
EXIF metadata parser

This module walks the APP1 segments of a JPEG file and decodes the
embedded TIFF structure: the linked chain of Image File Directories
(IFDs), each entry's typed value, and the Exif sub-IFD. Bare TIFF files
are decoded by the same walker.

Copyright 2025 DNAi inc.
"""

import io
import logging
import struct
import xml.etree.ElementTree as ET
from enum import IntEnum
from typing import Dict, List, NamedTuple, Optional, Set

from metaprobe.byte_range import BIG_ENDIAN, LITTLE_ENDIAN, ByteRange
from metaprobe.config import ProbeConfig
from metaprobe.exceptions import (
    InvalidHeaderError,
    MalformedStructureError,
    MetaProbeError,
)
from metaprobe.exif_tags import (
    TAG_EXIF_OFFSET,
    TAG_MAKER_NOTE,
    TAG_PADDING,
    TAG_USER_COMMENT,
    TAG_XP_AUTHOR,
    TAG_XP_COMMENT,
    TAG_XP_KEYWORDS,
    TAG_XP_SUBJECT,
    TAG_XP_TITLE,
    get_marker_name,
    get_tag_name,
)
from metaprobe.hex_dump import format_dump
from metaprobe.output import ProbeOutput

logger = logging.getLogger(__name__)


class ExifTagType(IntEnum):
    """EXIF value kinds: the TIFF type codes plus kinds chosen by tag"""
    BYTE = 1
    ASCII = 2
    SHORT = 3
    LONG = 4
    RATIONAL = 5
    SBYTE = 6
    UNDEFINED = 7
    SSHORT = 8
    SLONG = 9
    SRATIONAL = 10
    FLOAT = 11
    DOUBLE = 12

    # Kinds that only the override table selects
    BYTE_COUNT = 1001
    SUB_IFD = 1002
    UTF16 = 1003
    USER_COMMENT = 1004

    # Declared type code outside the TIFF 6.0 set
    UNKNOWN = 1099


# Element sizes in bytes
TAG_SIZES = {
    ExifTagType.BYTE: 1,
    ExifTagType.ASCII: 1,
    ExifTagType.SHORT: 2,
    ExifTagType.LONG: 4,
    ExifTagType.RATIONAL: 8,
    ExifTagType.SBYTE: 1,
    ExifTagType.UNDEFINED: 1,
    ExifTagType.SSHORT: 2,
    ExifTagType.SLONG: 4,
    ExifTagType.SRATIONAL: 8,
    ExifTagType.FLOAT: 4,
    ExifTagType.DOUBLE: 8,
    ExifTagType.SUB_IFD: 4,
    ExifTagType.UTF16: 1,
    ExifTagType.USER_COMMENT: 1,
}

# struct format characters for the plain numeric kinds
NUMERIC_FORMATS = {
    ExifTagType.SHORT: 'H',
    ExifTagType.LONG: 'I',
    ExifTagType.SBYTE: 'b',
    ExifTagType.SSHORT: 'h',
    ExifTagType.SLONG: 'i',
    ExifTagType.FLOAT: 'f',
    ExifTagType.DOUBLE: 'd',
}

# The override table takes precedence over the declared type
TYPE_OVERRIDES: Dict[int, ExifTagType] = {
    TAG_EXIF_OFFSET: ExifTagType.SUB_IFD,
    TAG_MAKER_NOTE: ExifTagType.BYTE_COUNT,
    TAG_PADDING: ExifTagType.BYTE_COUNT,
    TAG_XP_TITLE: ExifTagType.UTF16,
    TAG_XP_COMMENT: ExifTagType.UTF16,
    TAG_XP_AUTHOR: ExifTagType.UTF16,
    TAG_XP_KEYWORDS: ExifTagType.UTF16,
    TAG_XP_SUBJECT: ExifTagType.UTF16,
    TAG_USER_COMMENT: ExifTagType.USER_COMMENT,
}

TIFF_HEADER_LE = b'II\x2a\x00'
TIFF_HEADER_BE = b'MM\x00\x2a'

EXIF_HEADER = b'Exif\x00\x00'
XMP_HEADER = b'http://ns.adobe.com/xap/1.0/\x00'

# UserComment character code prefixes
USER_COMMENT_ASCII = b'ASCII\x00\x00\x00'
USER_COMMENT_JIS = b'JIS\x00\x00\x00\x00\x00'
USER_COMMENT_UNICODE = b'UNICODE\x00'

ENTRY_SIZE = 12

# JPEG markers
MARKER_SOI = 0xFFD8
MARKER_EOI = 0xFFD9
MARKER_SOS = 0xFFDA
MARKER_APP1 = 0xFFE1
MARKER_TEM = 0xFF01


class DirectoryEntry(NamedTuple):
    """One 12-byte IFD entry; offset is relative to the TIFF header."""
    index: int
    offset: int
    tag: int
    type_code: int
    count: int


def resolve_tag_type(tag: int, type_code: int) -> ExifTagType:
    """
    Decide how an entry's value is decoded.

    The override table wins over the declared type; declared codes outside
    the known set resolve to UNKNOWN.
    """
    override = TYPE_OVERRIDES.get(tag)
    if override is not None:
        return override
    try:
        kind = ExifTagType(type_code)
    except ValueError:
        return ExifTagType.UNKNOWN
    if kind not in NUMERIC_FORMATS and kind not in (
        ExifTagType.BYTE, ExifTagType.ASCII, ExifTagType.UNDEFINED,
        ExifTagType.RATIONAL, ExifTagType.SRATIONAL,
    ):
        # Tag-only kinds can't be selected by a declared type code
        return ExifTagType.UNKNOWN
    return kind


def type_name(type_code: int) -> str:
    try:
        return ExifTagType(type_code).name
    except ValueError:
        return f"0x{type_code:04x}"


def byte_order_of(tiff: ByteRange) -> str:
    """
    Return the struct byte-order prefix declared by a TIFF header.

    Raises:
        InvalidHeaderError: If the first four bytes are not a TIFF header
    """
    if tiff.matches(0, TIFF_HEADER_LE):
        return LITTLE_ENDIAN
    if tiff.matches(0, TIFF_HEADER_BE):
        return BIG_ENDIAN
    raise InvalidHeaderError("Invalid TIFF header. Expected II*\\0 or MM\\0*.")


def _decode_ascii(raw: bytes) -> str:
    null_pos = raw.find(b'\x00')
    if null_pos >= 0:
        raw = raw[:null_pos]
    if any(b > 127 for b in raw):
        try:
            return raw.decode('utf-8', errors='strict')
        except UnicodeDecodeError:
            pass
    return raw.decode('ascii', errors='replace')


def _strip_utf16(text: str) -> str:
    return text.split('\x00', 1)[0]


class ExifParser:
    """
    Parser for EXIF metadata in JPEG and TIFF files.

    Output follows the traversal order: IFD0, then its Exif sub-IFD,
    then IFD1 and any further directories in the chain.
    """

    def __init__(self, output: ProbeOutput, config: Optional[ProbeConfig] = None):
        """
        Initialize the EXIF parser.

        Args:
            output: Sink receiving the rendered fields
            config: Probe configuration
        """
        self.output = output
        self.config = config or output.config

    # ------------------------------------------------------------------
    # JPEG container
    # ------------------------------------------------------------------

    def probe_jpeg(self, data: ByteRange) -> None:
        """
        Walk JPEG segments and decode every Exif and XMP APP1 segment.

        Raises:
            InvalidHeaderError: If the file has no Start of Image marker
            TruncatedError: If the file is shorter than the SOI marker
        """
        marker = data.uint16(0)
        if marker != MARKER_SOI:
            raise InvalidHeaderError("Invalid JPEG file. No Start of Image marker.")
        if self.config.verbose:
            self.output.line(f"{get_marker_name(marker)}(0x{marker:04x})")

        pos = 2
        while pos + 2 <= len(data):
            marker = data.uint16(pos)
            if marker & 0xFF00 != 0xFF00:
                self.output.line(f"Invalid JPEG marker 0x{marker:04x} at offset 0x{pos:x}.")
                break

            # Markers without a length field
            if marker == MARKER_TEM or 0xFFD0 <= marker <= 0xFFD7 or marker == MARKER_SOI:
                pos += 2
                continue
            if marker == MARKER_EOI:
                if self.config.verbose:
                    self.output.blank()
                    self.output.line(f"{get_marker_name(marker)}(0x{marker:04x})")
                break

            if pos + 4 > len(data):
                self.output.line("Truncated JPEG marker.")
                break
            segment_len = data.uint16(pos + 2)
            if self.config.verbose:
                self.output.blank()
                self.output.line(f"{get_marker_name(marker)}(0x{marker:04x})")
                self.output.line(f"Length: {segment_len}")
            if segment_len < 2:
                self.output.line(f"Invalid segment length {segment_len}.")
                break

            if marker == MARKER_APP1:
                # Segment length counts the length field but not the marker
                try:
                    self._probe_app1(data.sub_range(pos + 4, segment_len - 2))
                except MetaProbeError as e:
                    logger.debug("APP1 segment at 0x%x failed: %s", pos, e)
                    self.output.line(f"Error: {e.describe()}")

            if marker == MARKER_SOS:
                # Entropy-coded data follows; no metadata segments after it
                break
            pos += segment_len + 2

    def _probe_app1(self, segment: ByteRange) -> None:
        if segment.matches(0, EXIF_HEADER):
            self.probe_tiff(segment.tail(len(EXIF_HEADER)))
        elif segment.matches(0, XMP_HEADER):
            self.probe_xmp(segment.tail(len(XMP_HEADER)))
        elif self.config.verbose:
            self.output.line("Unrecognized APP1 segment.")

    # ------------------------------------------------------------------
    # XMP
    # ------------------------------------------------------------------

    def probe_xmp(self, packet: ByteRange) -> None:
        """
        Print the properties of an XMP packet.

        Each element with text content and each attribute of an
        rdf:Description is printed as prefix:Name: value.
        """
        raw = packet.to_bytes().rstrip(b'\x00 \r\n\t')
        self.output.line("XMP")

        prefixes: Dict[str, str] = {}
        try:
            for _, (prefix, uri) in ET.iterparse(io.BytesIO(raw), events=('start-ns',)):
                prefixes.setdefault(uri, prefix)
            root = ET.fromstring(raw)
        except ET.ParseError as e:
            self.output.line(f"Invalid XMP packet: {e}")
            return

        def qualify(name: str) -> str:
            if name.startswith('{'):
                uri, local = name[1:].split('}', 1)
                prefix = prefixes.get(uri)
                return f"{prefix}:{local}" if prefix else local
            return name

        with self.output.indented():
            for element in root.iter():
                if not isinstance(element.tag, str):
                    continue
                for attr, value in element.attrib.items():
                    if qualify(attr).startswith(('rdf:', 'xml:')):
                        continue
                    self.output.line(f"{qualify(attr)}: {value}")
                text = (element.text or '').strip()
                if text and len(element) == 0:
                    self.output.line(f"{qualify(element.tag)}: {text}")

    # ------------------------------------------------------------------
    # TIFF structure
    # ------------------------------------------------------------------

    def probe_tiff(self, tiff: ByteRange) -> None:
        """
        Decode a TIFF header and its chain of IFDs.

        Args:
            tiff: Range starting at the TIFF byte-order marker; all IFD
                and value offsets are relative to its start

        Raises:
            InvalidHeaderError: If the byte-order marker or magic number is wrong
            MalformedStructureError: If a directory has two Exif sub-IFD pointers
            OutOfRangeError: If an IFD lies outside the TIFF data
        """
        endian = byte_order_of(tiff)
        ifd0_offset = tiff.uint32(4, endian)

        if self.config.verbose:
            self.output.line(f"Byte Order: {'Big-Endian' if endian == BIG_ENDIAN else 'Little-Endian'}")
            self.output.line(f"ifd0 Offset: {ifd0_offset}")

        visited: Set[int] = set()
        ifd_offset = ifd0_offset
        index = 0
        while ifd_offset != 0:
            if not self._visit(ifd_offset, visited):
                break
            self.output.line(f"ifd{index}")
            ifd_offset = self._probe_ifd(tiff, ifd_offset, endian, visited)
            index += 1

    def _visit(self, ifd_offset: int, visited: Set[int]) -> bool:
        """Record an IFD offset; refuse cycles and runaway chains."""
        if ifd_offset in visited:
            self.output.line(f"IFD at offset 0x{ifd_offset:08x} already visited; stopping.")
            return False
        if len(visited) >= self.config.max_ifd_count:
            self.output.line(f"IFD limit of {self.config.max_ifd_count} reached; stopping.")
            return False
        visited.add(ifd_offset)
        return True

    def read_entries(self, tiff: ByteRange, ifd_offset: int, endian: str) -> List[DirectoryEntry]:
        """
        Read the fixed part of every entry in one IFD.

        Raises:
            OutOfRangeError: If the entry table runs past the TIFF data
        """
        count = tiff.uint16(ifd_offset, endian)
        table = tiff.sub_range(ifd_offset + 2, count * ENTRY_SIZE)
        entries = []
        for i in range(count):
            pos = i * ENTRY_SIZE
            tag, type_code, n = struct.unpack(f'{endian}HHI', table.read(pos, 8))
            entries.append(DirectoryEntry(i, ifd_offset + 2 + pos, tag, type_code, n))
        return entries

    def _probe_ifd(self, tiff: ByteRange, ifd_offset: int, endian: str, visited: Set[int]) -> int:
        """
        Print one IFD (and its Exif sub-IFD) and return the next IFD offset.
        """
        entries = self.read_entries(tiff, ifd_offset, endian)
        if self.config.verbose:
            with self.output.indented():
                self.output.line(f"IfdOffset: 0x{ifd_offset:08x}")
                self.output.line(f"IfdEntries: {len(entries)}")

        sub_ifd_offset = 0
        with self.output.indented():
            for entry in entries:
                kind = resolve_tag_type(entry.tag, entry.type_code)
                if kind == ExifTagType.SUB_IFD:
                    if sub_ifd_offset != 0:
                        raise MalformedStructureError("Multiple ExifSubIFD entries!")
                    sub_ifd_offset = tiff.uint32(entry.offset + 8, endian)
                    value = "SubIfd reported below."
                else:
                    try:
                        value = self.decode_value(tiff, entry, endian)
                    except MetaProbeError as e:
                        logger.debug("IFD entry 0x%04x failed: %s", entry.tag, e)
                        value = f"<Error: {e.describe()}>"

                # Blob dumps run over several lines
                first, *rest = value.split('\n')
                self.output.line(f"{get_tag_name(entry.tag)}(0x{entry.tag:04x}): {first}")
                with self.output.indented():
                    for line in rest:
                        self.output.line(line)
                if self.config.verbose:
                    with self.output.indented():
                        self.output.line(
                            f"entry={entry.index:02d}, type={type_name(entry.type_code)}, count={entry.count}"
                        )

        if sub_ifd_offset != 0 and self._visit(sub_ifd_offset, visited):
            self.output.line("ExifSubIFD")
            # The sub-IFD's own next pointer is not part of the main chain
            self._probe_ifd(tiff, sub_ifd_offset, endian, visited)

        return tiff.uint32(ifd_offset + 2 + len(entries) * ENTRY_SIZE, endian)

    # ------------------------------------------------------------------
    # Values
    # ------------------------------------------------------------------

    def value_range(self, tiff: ByteRange, entry: DirectoryEntry, element_size: int, endian: str) -> ByteRange:
        """
        Locate an entry's value bytes.

        Values of at most four bytes live inline in the entry's last four
        bytes; larger values are stored at an offset from the TIFF header.
        """
        total = entry.count * element_size
        if total <= 4:
            return tiff.sub_range(entry.offset + 8, total)
        return tiff.sub_range(tiff.uint32(entry.offset + 8, endian), total)

    def decode_value(self, tiff: ByteRange, entry: DirectoryEntry, endian: str) -> str:
        """
        Render one entry's value as text.

        Raises:
            OutOfRangeError: If the value lies outside the TIFF data
        """
        kind = resolve_tag_type(entry.tag, entry.type_code)
        n = entry.count

        if kind == ExifTagType.BYTE_COUNT:
            return f"{n} bytes."
        if kind == ExifTagType.UNKNOWN:
            return f"Unknown type {entry.type_code}, count={n}"

        data = self.value_range(tiff, entry, TAG_SIZES[kind], endian)

        if kind in (ExifTagType.BYTE, ExifTagType.UNDEFINED):
            return self._format_blob(data.to_bytes())

        if kind == ExifTagType.ASCII:
            return _decode_ascii(data.to_bytes())

        if kind in NUMERIC_FORMATS:
            fmt = NUMERIC_FORMATS[kind]
            values = struct.unpack(f'{endian}{n}{fmt}', data.to_bytes())
            if kind in (ExifTagType.FLOAT, ExifTagType.DOUBLE):
                return ' '.join(f"{v:g}" for v in values)
            return ' '.join(str(v) for v in values)

        if kind in (ExifTagType.RATIONAL, ExifTagType.SRATIONAL):
            fmt = 'I' if kind == ExifTagType.RATIONAL else 'i'
            parts = struct.unpack(f'{endian}{2 * n}{fmt}', data.to_bytes())
            return ' '.join(f"{parts[i]}/{parts[i + 1]}" for i in range(0, len(parts), 2))

        if kind == ExifTagType.UTF16:
            # Windows writes these little-endian whatever the TIFF byte order
            return _strip_utf16(data.to_bytes().decode('utf-16-le', errors='replace'))

        if kind == ExifTagType.USER_COMMENT:
            return self.decode_user_comment(data.to_bytes(), endian)

        return ""

    @staticmethod
    def decode_user_comment(raw: bytes, endian: str = LITTLE_ENDIAN) -> str:
        """
        Decode a UserComment value.

        The first eight bytes name the character code. A missing or
        unrecognized code yields an empty value.
        """
        if len(raw) <= 8:
            return ""
        marker, payload = raw[:8], raw[8:]
        if marker == USER_COMMENT_ASCII:
            return payload.decode('ascii', errors='replace').rstrip('\x00 ')
        if marker == USER_COMMENT_JIS:
            return "Unsupported: JIS String"
        if marker == USER_COMMENT_UNICODE:
            codec = 'utf-16-be' if endian == BIG_ENDIAN else 'utf-16-le'
            return _strip_utf16(payload.decode(codec, errors='replace')).rstrip(' ')
        return ""

    def _format_blob(self, raw: bytes) -> str:
        shown = min(len(raw), self.config.max_dump_bytes)
        text = '\n'.join(format_dump(0, raw, 0, shown)).strip()
        if shown < len(raw):
            text += f"\n... ({len(raw) - shown} more bytes)"
        return text

