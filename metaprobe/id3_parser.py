# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
ID3v2 tag parser

This module decodes the ID3v2 tag at the start of an MP3 file: the tag
header, the optional extended header, and every frame up to the
padding. ID3v2.2, 2.3 and 2.4 tags are supported.

Copyright 2025 DNAi inc.
"""

import logging
import zlib
from typing import List, NamedTuple, Optional, Tuple

from metaprobe.byte_range import ByteRange
from metaprobe.config import ProbeConfig
from metaprobe.exceptions import (
    InvalidHeaderError,
    MalformedStructureError,
    MetaProbeError,
    TruncatedError,
)
from metaprobe.id3_frames import (
    GENRE_REFINEMENTS,
    V22_FRAME_IDS,
    FrameInfo,
    FrameKind,
    get_frame_info,
    get_genre_name,
    get_picture_type_name,
)
from metaprobe.output import ProbeOutput

logger = logging.getLogger(__name__)

HEADER_SIZE = 10

# Tag header flags
FLAG_UNSYNCHRONIZATION = 0x80
FLAG_EXTENDED_HEADER = 0x40
FLAG_EXPERIMENTAL = 0x20

# Text encodings
ENCODING_LATIN1 = 0
ENCODING_UTF16 = 1
ENCODING_UTF16BE = 2
ENCODING_UTF8 = 3

CODECS = {
    ENCODING_LATIN1: 'latin-1',
    ENCODING_UTF16: 'utf-16',
    ENCODING_UTF16BE: 'utf-16-be',
    ENCODING_UTF8: 'utf-8',
}


class Id3Header(NamedTuple):
    major: int
    minor: int
    flags: int
    size: int

    @property
    def unsynchronized(self) -> bool:
        return bool(self.flags & FLAG_UNSYNCHRONIZATION)

    @property
    def has_extended_header(self) -> bool:
        return bool(self.flags & FLAG_EXTENDED_HEADER)

    @property
    def experimental(self) -> bool:
        return bool(self.flags & FLAG_EXPERIMENTAL)


class FrameFlags(NamedTuple):
    """Frame status and format flags, normalized across versions."""
    tag_alter_preservation: bool = False
    file_alter_preservation: bool = False
    read_only: bool = False
    compression: bool = False
    encryption: bool = False
    grouping: bool = False
    unsynchronization: bool = False
    data_length_indicator: bool = False

    def names(self) -> List[str]:
        return [name for name, value in zip(self._fields, self) if value]


def parse_frame_flags(major: int, flags: int) -> FrameFlags:
    """Map the two frame flag bytes onto FrameFlags for a tag version."""
    status, fmt = flags >> 8, flags & 0xFF
    if major >= 4:
        return FrameFlags(
            tag_alter_preservation=bool(status & 0x40),
            file_alter_preservation=bool(status & 0x20),
            read_only=bool(status & 0x10),
            grouping=bool(fmt & 0x40),
            compression=bool(fmt & 0x08),
            encryption=bool(fmt & 0x04),
            unsynchronization=bool(fmt & 0x02),
            data_length_indicator=bool(fmt & 0x01),
        )
    return FrameFlags(
        tag_alter_preservation=bool(status & 0x80),
        file_alter_preservation=bool(status & 0x40),
        read_only=bool(status & 0x20),
        compression=bool(fmt & 0x80),
        encryption=bool(fmt & 0x40),
        grouping=bool(fmt & 0x20),
    )


def decode_synchsafe(raw: bytes) -> int:
    """
    Decode a synchsafe integer (seven significant bits per byte).

    Raises:
        InvalidHeaderError: If any byte has its high bit set
    """
    value = 0
    for b in raw:
        if b & 0x80:
            raise InvalidHeaderError(f"Invalid synchsafe integer {raw.hex()}.")
        value = (value << 7) | b
    return value


def remove_unsynchronization(data: bytes) -> bytes:
    """Collapse every FF 00 pair to FF."""
    return data.replace(b'\xff\x00', b'\xff')


def parse_header(data: ByteRange) -> Id3Header:
    """
    Parse the 10-byte tag header.

    Raises:
        TruncatedError: If fewer than 10 bytes are available
        InvalidHeaderError: If the magic, version or size bytes are invalid
    """
    if len(data) < HEADER_SIZE:
        raise TruncatedError("Invalid MP3/ID3 file. File too short.")
    if not data.matches(0, b'ID3'):
        raise InvalidHeaderError("Invalid MP3/ID3 file header.")
    major, minor, flags = data.uint8(3), data.uint8(4), data.uint8(5)
    if major == 0xFF or minor == 0xFF:
        raise InvalidHeaderError("Invalid MP3/ID3 file header.")
    size = decode_synchsafe(data.read(6, 4))
    return Id3Header(major, minor, flags, size)


def _terminator(encoding: int) -> bytes:
    return b'\x00\x00' if encoding in (ENCODING_UTF16, ENCODING_UTF16BE) else b'\x00'


def _codec(encoding: int) -> str:
    codec = CODECS.get(encoding)
    if codec is None:
        raise MalformedStructureError(f"Invalid text encoding {encoding}.")
    return codec


def split_string(raw: bytes, encoding: int) -> Tuple[str, bytes]:
    """
    Split one terminated string off the front of raw.

    Returns the decoded string and the bytes after its terminator. A
    string without a terminator runs to the end of raw.
    """
    codec = _codec(encoding)
    term = _terminator(encoding)
    pos = raw.find(term)
    # UTF-16 terminators are aligned on code units
    while pos >= 0 and len(term) == 2 and pos % 2:
        pos = raw.find(term, pos + 1)
    if pos < 0:
        return raw.decode(codec, errors='replace'), b''
    return raw[:pos].decode(codec, errors='replace'), raw[pos + len(term):]


def decode_strings(raw: bytes, encoding: int) -> List[str]:
    """Decode a terminator-separated list of strings (ID3v2.4 multi-value text)."""
    values = []
    while raw:
        value, raw = split_string(raw, encoding)
        values.append(value)
    while values and not values[-1]:
        values.pop()
    return values


def decode_genre(text: str) -> str:
    """
    Resolve a TCON value.

    ID3v2.3 writes references as "(n)" followed by an optional
    refinement; "((" escapes a literal parenthesis. ID3v2.4 writes bare
    numbers. Numbers outside the genre table are kept literally.
    """
    parts: List[str] = []
    rest = text
    while rest.startswith('(') and not rest.startswith('(('):
        end = rest.find(')')
        if end < 0:
            break
        ref = rest[1:end]
        if ref.isdigit():
            parts.append(get_genre_name(int(ref)) or f"({ref})")
        else:
            parts.append(GENRE_REFINEMENTS.get(ref, f"({ref})"))
        rest = rest[end + 1:]

    if rest.startswith('(('):
        rest = rest[1:]
    if rest.isdigit() and not parts:
        rest = get_genre_name(int(rest)) or rest
    if rest and rest not in parts:
        parts.append(rest)
    return ' / '.join(parts)


class Id3Frame(NamedTuple):
    frame_id: str
    size: int
    flags: int
    body: ByteRange


class Id3Parser:
    """
    Parser for ID3v2 tags.

    Each frame is decoded in isolation: a failure is written inline and
    the walk continues at the next frame by the declared size.
    """

    def __init__(self, output: ProbeOutput, config: Optional[ProbeConfig] = None):
        self.output = output
        self.config = config or output.config

    def probe(self, data: ByteRange) -> None:
        """
        Print the tag header, extended header and frames.

        Raises:
            TruncatedError: If the file is shorter than the tag header
            InvalidHeaderError: If the tag header is invalid
        """
        self.output.line(" --- Header ---")
        self.output.dump(0, data.read(0, min(HEADER_SIZE, len(data))))
        header = parse_header(data)

        self.output.line("FileType: MP3 with ID3v2 metadata.")
        self.output.line(f"ID3v2_Version: {header.major}.{header.minor}")
        self.output.line(f"Unsynchronization: {int(header.unsynchronized)}")
        self.output.line(f"ExtendedHeader: {int(header.has_extended_header)}")
        self.output.line(f"Experimental: {int(header.experimental)}")
        self.output.line(f"TagSize: {header.size}")
        self.output.blank()

        available = data.remaining(HEADER_SIZE)
        body_size = header.size
        if body_size > available:
            self.output.line(f"Tag extends past end of file; {body_size - available} bytes missing.")
            body_size = available
        raw_body = data.read(HEADER_SIZE, body_size)

        # ID3v2.4 unsynchronizes per frame and frame sizes count the stuffed bytes
        if header.unsynchronized and header.major < 4:
            raw_body = remove_unsynchronization(raw_body)
            if self.config.verbose:
                self.output.line(f"Unsynchronized tag body: {body_size} -> {len(raw_body)} bytes")
        body = ByteRange(raw_body)

        frames_start = 0
        if header.has_extended_header:
            frames_start = self._probe_extended_header(header, body)

        if self.config.verbose:
            self.output.line(" --- Tag Body ---")
            self.output.dump(HEADER_SIZE, raw_body)
            self.output.blank()

        self.output.line(" --- Frames ---")
        self._probe_frames(header, body.tail(frames_start))

    def _probe_extended_header(self, header: Id3Header, body: ByteRange) -> int:
        """Print the extended header and return its total length."""
        self.output.line(" --- Extended Header ---")
        if header.major >= 4:
            # Synchsafe, counts the size field itself
            total = decode_synchsafe(body.read(0, 4))
        else:
            total = body.uint32(0) + 4
        self.output.dump(HEADER_SIZE, body.read(0, total))
        self.output.blank()
        return total

    def read_frame(self, header: Id3Header, body: ByteRange, pos: int) -> Optional[Id3Frame]:
        """
        Read the frame header at pos.

        Returns None at padding or when too few bytes remain for a frame
        header.

        Raises:
            TruncatedError: If the declared frame size runs past the tag
            InvalidHeaderError: If a v2.4 synchsafe size is invalid
        """
        if header.major == 2:
            if body.remaining(pos) < 6:
                return None
            raw_id = body.read(pos, 3)
            if raw_id == b'\x00\x00\x00':
                return None
            size = int.from_bytes(body.read(pos + 3, 3), 'big')
            frame_id = raw_id.decode('latin-1')
            return Id3Frame(V22_FRAME_IDS.get(frame_id, frame_id), size, 0, body.sub_range(pos + 6, size))

        if body.remaining(pos) < HEADER_SIZE:
            return None
        raw_id = body.read(pos, 4)
        if raw_id == b'\x00\x00\x00\x00':
            return None
        if header.major >= 4:
            size = decode_synchsafe(body.read(pos + 4, 4))
        else:
            size = body.uint32(pos + 4)
        flags = body.uint16(pos + 8)
        return Id3Frame(raw_id.decode('latin-1'), size, flags, body.sub_range(pos + HEADER_SIZE, size))

    def _probe_frames(self, header: Id3Header, body: ByteRange) -> None:
        frame_header_size = 6 if header.major == 2 else HEADER_SIZE
        pos = 0
        while pos < len(body):
            try:
                frame = self.read_frame(header, body, pos)
            except MetaProbeError as e:
                logger.debug("ID3 frame header at %d failed: %s", pos, e)
                self.output.line(f"Error: {e.describe()}")
                return
            if frame is None:
                break

            info = get_frame_info(frame.frame_id)
            label = f"{frame.frame_id} ({info.name})" if info else frame.frame_id
            try:
                self._probe_frame(header, frame, info, label)
            except MetaProbeError as e:
                logger.debug("ID3 frame %s failed: %s", frame.frame_id, e)
                self.output.line(f"{label}: <Error: {e.describe()}>")
            pos += frame_header_size + frame.size

        padding = body.remaining(pos)
        if padding:
            self.output.line(f"Padding: {padding} bytes")

    def frame_payload(self, header: Id3Header, frame: Id3Frame) -> Optional[bytes]:
        """
        Strip the flag-dependent prefixes from a frame body and undo
        frame-level compression and unsynchronization.

        Returns None for encrypted frames.
        """
        flags = parse_frame_flags(header.major, frame.flags)
        raw = frame.body.to_bytes()
        if header.major >= 4:
            if flags.grouping:
                raw = raw[1:]
            if flags.encryption:
                return None
            if flags.data_length_indicator:
                raw = raw[4:]
            if flags.unsynchronization:
                raw = remove_unsynchronization(raw)
        else:
            if flags.compression:
                raw = raw[4:]
            if flags.encryption:
                return None
            if flags.grouping:
                raw = raw[1:]

        if flags.compression:
            try:
                raw = zlib.decompress(raw)
            except zlib.error as e:
                raise MalformedStructureError(f"Decompression failed: {e}")
        return raw

    def _probe_frame(self, header: Id3Header, frame: Id3Frame, info: Optional[FrameInfo], label: str) -> None:
        if self.config.verbose and frame.flags:
            flags = parse_frame_flags(header.major, frame.flags)
            with self.output.indented():
                self.output.line(f"flags: 0x{frame.flags:04x} {' '.join(flags.names())}")

        payload = self.frame_payload(header, frame)
        if payload is None:
            self.output.line(f"{label}: (encrypted, {frame.size} bytes)")
            return

        if info is None or info.kind == FrameKind.BINARY:
            self.output.line(f"{label}: {len(payload)} bytes")
            self.output.dump(0, payload)
            return
        self.output.line(f"{label}: {self.decode_frame(info, payload)}")
        if info.kind == FrameKind.PRIVATE:
            _, data = split_string(payload, ENCODING_LATIN1)
            self.output.dump(0, data)

    def decode_frame(self, info: FrameInfo, payload: bytes) -> str:
        """
        Render a frame payload of a known layout as a single value.

        Frames whose table entry has an encoding byte start with it; the
        others are read as Latin-1 strings and raw bytes.
        """
        kind = info.kind
        if not info.has_encoding:
            if kind == FrameKind.URL:
                return split_string(payload, ENCODING_LATIN1)[0]
            if kind == FrameKind.PLAY_COUNTER:
                return str(int.from_bytes(payload, 'big'))
            if kind == FrameKind.PRIVATE:
                owner, data = split_string(payload, ENCODING_LATIN1)
                return f"{owner}, {len(data)} bytes"
            if kind == FrameKind.UNIQUE_ID:
                owner, identifier = split_string(payload, ENCODING_LATIN1)
                if identifier and all(0x20 <= b < 0x7F for b in identifier):
                    return f"{owner}: {identifier.decode('ascii')}"
                return f"{owner}: {identifier.hex()}"
            if kind == FrameKind.POPULARIMETER:
                email, rest = split_string(payload, ENCODING_LATIN1)
                if not rest:
                    raise TruncatedError("Popularimeter has no rating.")
                counter = int.from_bytes(rest[1:], 'big') if len(rest) > 1 else 0
                return f"{email} rating={rest[0]} counter={counter}"
            return f"{len(payload)} bytes"

        if not payload:
            return ""
        encoding, text = payload[0], payload[1:]

        if kind == FrameKind.TEXT:
            return ' / '.join(decode_strings(text, encoding))
        if kind == FrameKind.GENRE:
            return ' / '.join(decode_genre(v) for v in decode_strings(text, encoding))
        if kind == FrameKind.USER_TEXT:
            description, rest = split_string(text, encoding)
            return f"{description}: {' / '.join(decode_strings(rest, encoding))}"
        if kind == FrameKind.USER_URL:
            description, rest = split_string(text, encoding)
            return f"{description}: {split_string(rest, ENCODING_LATIN1)[0]}"
        if kind == FrameKind.COMMENT:
            if len(text) < 3:
                raise TruncatedError("Comment frame has no language code.")
            language = text[:3].decode('latin-1')
            description, rest = split_string(text[3:], encoding)
            value = split_string(rest, encoding)[0] if rest else ''
            if description:
                return f"[{language}] {description}: {value}"
            return f"[{language}] {value}"
        if kind == FrameKind.PICTURE:
            mime, rest = split_string(text, ENCODING_LATIN1)
            if not rest:
                raise TruncatedError("Picture frame has no picture type.")
            picture_type = rest[0]
            description, image = split_string(rest[1:], encoding)
            return f"{mime}, {get_picture_type_name(picture_type)}, \"{description}\", {len(image)} bytes"
        return ""
