# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
MP4 / QuickTime box walker

This module walks the box (atom) tree of ISO Base Media files: MP4,
M4A, M4V, MOV and 3GP. Containers are descended into; known leaf boxes
are decoded and printed, everything else is listed with its length.

Boxes are 8-byte headers (big-endian length including the header, then
a four-character type), or 16 bytes when the length field is 1 and a
64-bit "largesize" follows the type. Length 0 means the box runs to
the end of its parent.

Copyright 2025 DNAi inc.
"""

import datetime
import logging
import uuid
from typing import Callable, Dict, NamedTuple, Optional

from metaprobe.byte_range import LITTLE_ENDIAN, ByteRange
from metaprobe.config import ProbeConfig
from metaprobe.exceptions import MalformedStructureError, MetaProbeError, TruncatedError
from metaprobe.output import ProbeOutput

logger = logging.getLogger(__name__)

# Boxes whose body is a sequence of child boxes
CONTAINER_BOXES = frozenset([
    'moov', 'udta', 'trak', 'mdia', 'minf', 'dinf',
    'stbl', 'edts', 'mvex', 'moof', 'traf',
])

# QuickTime epoch for mvhd/tkhd/mdhd times
MP4_EPOCH = datetime.datetime(1904, 1, 1, 0, 0, 0, tzinfo=datetime.timezone.utc)

# Windows FILETIME epoch (100ns ticks) used by Xtra
FILETIME_EPOCH = datetime.datetime(1601, 1, 1, 0, 0, 0, tzinfo=datetime.timezone.utc)

# ilst 'data' well-known types
DATA_TYPE_IMPLICIT = 0
DATA_TYPE_UTF8 = 1
DATA_TYPE_UTF16 = 2
DATA_TYPE_UTF8_SORT = 4
DATA_TYPE_UTF16_SORT = 5
DATA_TYPE_JPEG = 13
DATA_TYPE_PNG = 14
DATA_TYPE_BE_SIGNED = 21

# Xtra value types
XTRA_TYPE_UTF16 = 8
XTRA_TYPE_INT64 = 19
XTRA_TYPE_FILETIME = 21
XTRA_TYPE_GUID = 72


class BoxNode(NamedTuple):
    """A box located within its parent."""
    type: str
    length: int
    header_length: int
    body: ByteRange
    box: ByteRange


def read_box_header(parent: ByteRange, pos: int) -> BoxNode:
    """
    Read the box header at pos and bound the box to its declared length.

    Raises:
        TruncatedError: If the header or the declared length runs past the parent
        MalformedStructureError: If the declared length is smaller than the header
    """
    remaining = parent.remaining(pos)
    if remaining < 8:
        raise TruncatedError("Invalid Mp4 box -- header too short.")

    length = parent.uint32(pos)
    box_type = parent.string(pos + 4, 4)
    header_length = 8
    if length == 1:
        if remaining < 16:
            raise TruncatedError(f"Invalid Mp4 box '{box_type}' -- largesize header too short.")
        length = parent.uint64(pos + 8)
        header_length = 16
    elif length == 0:
        length = remaining

    if length < header_length:
        raise MalformedStructureError(
            f"Invalid Mp4 box '{box_type}' -- length 0x{length:08x} is smaller than its header."
        )
    if length > remaining:
        raise TruncatedError(
            f"Invalid Mp4 box '{box_type}' -- length 0x{length:08x} exceeds the {remaining} bytes available."
        )

    box = parent.sub_range(pos, length)
    return BoxNode(box_type, length, header_length, box.tail(header_length), box)


def mp4_date_to_string(seconds_since_1904: int) -> str:
    """Convert an MP4 time (seconds since 1904-01-01 UTC) to text."""
    try:
        dt = MP4_EPOCH + datetime.timedelta(seconds=seconds_since_1904)
    except OverflowError:
        return f"invalid ({seconds_since_1904})"
    return dt.strftime('%Y-%m-%d %H:%M:%S')


def filetime_to_string(filetime: int) -> str:
    """Convert a Windows FILETIME (100ns ticks since 1601) to text."""
    try:
        dt = FILETIME_EPOCH + datetime.timedelta(microseconds=filetime // 10)
    except OverflowError:
        return f"invalid ({filetime})"
    return dt.strftime('%Y-%m-%d %H:%M:%S')


def decode_language(packed: int) -> str:
    """Unpack an ISO-639-2/T code stored as three 5-bit letters."""
    return ''.join(chr(((packed >> shift) & 0x1F) + 0x60) for shift in (10, 5, 0))


class Mp4Parser:
    """
    Box-tree walker for ISO Base Media files.

    Siblings are walked iteratively and containment recursively, with
    the nesting depth capped by config.max_box_depth.
    """

    def __init__(self, output: ProbeOutput, config: Optional[ProbeConfig] = None):
        self.output = output
        self.config = config or output.config
        self._leaf_handlers: Dict[str, Callable[[BoxNode], None]] = {
            'ftyp': self._probe_ftyp,
            'mvhd': self._probe_mvhd,
            'tkhd': self._probe_tkhd,
            'mdhd': self._probe_mdhd,
            'hdlr': self._probe_hdlr,
            'ilst': self._probe_ilst,
            'Xtra': self._probe_xtra,
        }

    def probe(self, data: ByteRange) -> None:
        """Walk every top-level box of the file."""
        self._probe_boxes(data, 0)

    def _probe_boxes(self, parent: ByteRange, depth: int) -> None:
        pos = 0
        while pos < len(parent):
            try:
                box = read_box_header(parent, pos)
            except MetaProbeError as e:
                logger.debug("Box header at 0x%x failed: %s", parent.abs_offset(pos), e)
                self.output.line(e.describe())
                break

            self.output.line(f"{box.type}: len=0x{box.length:08x}")
            with self.output.indented():
                try:
                    self._probe_box(box, depth)
                except MetaProbeError as e:
                    logger.debug("Box '%s' failed: %s", box.type, e)
                    self.output.line(f"Error: {e.describe()}")
            pos += box.length

    def _probe_box(self, box: BoxNode, depth: int) -> None:
        if box.type in CONTAINER_BOXES:
            self._descend(box.body, depth)
        elif box.type == 'meta':
            # Full box: version and flags precede the children. Some
            # QuickTime writers omit them, in which case hdlr comes first.
            if box.body.matches(4, b'hdlr'):
                self._descend(box.body, depth)
            else:
                self._descend(box.body.tail(4), depth)
        else:
            handler = self._leaf_handlers.get(box.type)
            if handler is None:
                return
            if self.config.verbose:
                self.output.dump(0, box.box.to_bytes())
            handler(box)

    def _descend(self, body: ByteRange, depth: int) -> None:
        if depth + 1 >= self.config.max_box_depth:
            self.output.line(f"Box nesting limit of {self.config.max_box_depth} reached.")
            return
        self._probe_boxes(body, depth + 1)

    # ------------------------------------------------------------------
    # Leaf boxes
    # ------------------------------------------------------------------

    def _probe_ftyp(self, box: BoxNode) -> None:
        body = box.body
        self.output.line(f"MajorBrand: {body.string(0, 4)}")
        self.output.line(f"MinorVersion: {body.uint32(4)}")
        brands = [body.string(pos, 4) for pos in range(8, len(body) - 3, 4)]
        self.output.line(f"CompatibleBrands: {' '.join(brands)}")

    def _read_times(self, body: ByteRange):
        """Return (version, creation, modification, next offset) of a full box."""
        version = body.uint8(0)
        if version == 1:
            return version, body.uint64(4), body.uint64(12), 20
        return version, body.uint32(4), body.uint32(8), 12

    def _write_times(self, version: int, created: int, modified: int) -> None:
        self.output.line(f"version: {version}")
        self.output.line(f"DateCreated (utc): {mp4_date_to_string(created)}")
        self.output.line(f"DateModified (utc): {mp4_date_to_string(modified)}")

    def _write_duration(self, timescale: int, duration: int) -> None:
        self.output.line(f"TimeScale: {timescale}")
        if timescale:
            self.output.line(f"Duration: {duration} ({duration / timescale:.3f} s)")
        else:
            self.output.line(f"Duration: {duration}")

    def _probe_mvhd(self, box: BoxNode) -> None:
        body = box.body
        version, created, modified, pos = self._read_times(body)
        timescale = body.uint32(pos)
        duration = body.uint64(pos + 4) if version == 1 else body.uint32(pos + 4)
        self._write_times(version, created, modified)
        self._write_duration(timescale, duration)

    def _probe_tkhd(self, box: BoxNode) -> None:
        body = box.body
        version, created, modified, pos = self._read_times(body)
        track_id = body.uint32(pos)
        # Four reserved bytes follow the track id
        duration = body.uint64(pos + 8) if version == 1 else body.uint32(pos + 8)
        self._write_times(version, created, modified)
        self.output.line(f"TrackID: {track_id}")
        self.output.line(f"Duration: {duration}")

        # Width and height are the last two 16.16 fixed-point fields
        size_pos = pos + (16 if version == 1 else 12) + 52
        if body.remaining(size_pos) >= 8:
            width = body.uint32(size_pos) / 65536
            height = body.uint32(size_pos + 4) / 65536
            self.output.line(f"Width: {width:g}")
            self.output.line(f"Height: {height:g}")

    def _probe_mdhd(self, box: BoxNode) -> None:
        body = box.body
        version, created, modified, pos = self._read_times(body)
        timescale = body.uint32(pos)
        if version == 1:
            duration = body.uint64(pos + 4)
            lang_pos = pos + 12
        else:
            duration = body.uint32(pos + 4)
            lang_pos = pos + 8
        self._write_times(version, created, modified)
        self._write_duration(timescale, duration)
        if body.remaining(lang_pos) >= 2:
            self.output.line(f"Language: {decode_language(body.uint16(lang_pos))}")

    def _probe_hdlr(self, box: BoxNode) -> None:
        body = box.body
        self.output.line(f"version: {body.uint32(0):08x}")
        self.output.line(f"Type: {body.cstring(4, 4)}")
        self.output.line(f"Subtype: {body.cstring(8, 4)}")
        self.output.line(f"reserved: {body.cstring(12, 4)}")

        # Name follows 12 reserved bytes: a C string, or a Pascal string in QuickTime files
        if body.remaining(24) > 0:
            name_len = body.uint8(24)
            if name_len == body.remaining(25):
                name = body.string(25, name_len, 'utf-8')
            else:
                name = body.cstring(24, body.remaining(24), 'utf-8')
            if name:
                self.output.line(f"Name: {name}")

    def _probe_ilst(self, box: BoxNode) -> None:
        body = box.body
        pos = 0
        while pos < len(body):
            try:
                item = read_box_header(body, pos)
            except MetaProbeError as e:
                logger.debug("ilst item at %d failed: %s", pos, e)
                self.output.line("Invalid item length.")
                break

            try:
                name, value = self._decode_ilst_item(item)
            except MetaProbeError as e:
                name, value = item.type, f"<Error: {e.describe()}>"
            self.output.line(f"{name}: {value}")
            pos += item.length

    def _decode_ilst_item(self, item: BoxNode):
        """
        Decode one metadata item. The first 'data' child wins; freeform
        '----' items take their name from 'mean' and 'name' children.
        """
        name = item.type
        mean = key = None
        value = ''
        have_value = False

        pos = 0
        while pos < len(item.body):
            child = read_box_header(item.body, pos)
            if child.type == 'mean':
                mean = child.body.string(4, len(child.body) - 4, 'utf-8')
            elif child.type == 'name':
                key = child.body.string(4, len(child.body) - 4, 'utf-8')
            elif child.type == 'data' and not have_value:
                data_type = child.body.uint32(0) & 0x00FFFFFF
                value = self._decode_ilst_data(item.type, data_type, child.body.tail(8))
                have_value = True
            pos += child.length

        if name == '----':
            name = f"----:{mean or ''}:{key or ''}"
        return name, value

    @staticmethod
    def _decode_ilst_data(item_type: str, data_type: int, payload: ByteRange) -> str:
        raw = payload.to_bytes()
        if item_type in ('trkn', 'disk') and data_type == DATA_TYPE_IMPLICIT and len(raw) >= 6:
            return f"{payload.uint16(2)}/{payload.uint16(4)}"
        if data_type in (DATA_TYPE_UTF8, DATA_TYPE_UTF8_SORT):
            return raw.decode('utf-8', errors='replace')
        if data_type in (DATA_TYPE_UTF16, DATA_TYPE_UTF16_SORT):
            return raw.decode('utf-16-be', errors='replace')
        if data_type == DATA_TYPE_BE_SIGNED and raw:
            return str(int.from_bytes(raw, 'big', signed=True))
        if data_type == DATA_TYPE_JPEG:
            return f"JPEG image, {len(raw)} bytes"
        if data_type == DATA_TYPE_PNG:
            return f"PNG image, {len(raw)} bytes"
        return f"Unsupported type {data_type}"

    def _probe_xtra(self, box: BoxNode) -> None:
        """
        Decode the Windows Media Xtra box.

        Each entry: 4-byte entry length (including itself), 4-byte label
        length, label, 4-byte value count, then per value a 4-byte length
        (including itself), a 2-byte type and the data.
        """
        body = box.body
        pos = 0
        while pos < len(body):
            entry_len = body.uint32(pos)
            if entry_len < 12:
                self.output.line("Invalid Xtra entry length.")
                break
            entry = body.sub_range(pos, entry_len)
            label_len = entry.uint32(4)
            label = entry.string(8, label_len)
            value_count = entry.uint32(8 + label_len)

            values = []
            value_pos = 12 + label_len
            for _ in range(value_count):
                if value_pos >= entry_len:
                    break
                value_len = entry.uint32(value_pos)
                if value_len < 6:
                    raise MalformedStructureError(f"Invalid Xtra value length {value_len}.")
                data_type = entry.int16(value_pos + 4)
                data = entry.sub_range(value_pos + 6, value_len - 6)
                values.append(self._decode_xtra_value(data_type, data))
                value_pos += value_len

            if value_pos != entry_len:
                self.output.line("Data length mismatch.")
            self.output.line(f"{label:>24} {'; '.join(values)}")
            pos += entry_len

    @staticmethod
    def _decode_xtra_value(data_type: int, data: ByteRange) -> str:
        if data_type == XTRA_TYPE_UTF16:
            return data.to_bytes().decode('utf-16-le', errors='replace').rstrip('\x00')
        if data_type == XTRA_TYPE_INT64:
            return str(data.int64(0, LITTLE_ENDIAN))
        if data_type == XTRA_TYPE_FILETIME:
            return filetime_to_string(data.int64(0, LITTLE_ENDIAN))
        if data_type == XTRA_TYPE_GUID:
            return str(uuid.UUID(bytes_le=data.read(0, 16)))
        return f"Unsupported: dataType={data_type} dataLen={len(data)}"

