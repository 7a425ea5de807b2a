# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
Standard MIDI File parser

This module walks the chunks of a Standard MIDI File (SMF), prints the
MThd header, and decodes the event stream of every MTrk chunk. Channel
voice events are summarized (note counts, bank select, program changes);
meta events are printed in full.

Event decoding is a pure function, read_event(), that takes the running
status as an argument and returns the one to carry forward, so a track
can be decoded without any parser state.

Copyright 2025 DNAi inc.
"""

import logging
from typing import Iterator, NamedTuple, Optional, Tuple

import chardet

from metaprobe.byte_range import ByteRange
from metaprobe.config import ProbeConfig
from metaprobe.exceptions import InvalidHeaderError, MalformedStructureError, MetaProbeError
from metaprobe.output import ProbeOutput

logger = logging.getLogger(__name__)

CHUNK_HEADER_SIZE = 8

# Operand counts of channel voice messages, by status nibble
CHANNEL_DATA_LENGTHS = {
    0x80: 2,  # Note off
    0x90: 2,  # Note on
    0xA0: 2,  # Key aftertouch
    0xB0: 2,  # Control change
    0xC0: 1,  # Program change
    0xD0: 1,  # Channel aftertouch
    0xE0: 2,  # Pitch bend
}

# Operand counts of system common messages
SYSTEM_DATA_LENGTHS = {
    0xF1: 1,  # MIDI time code quarter frame
    0xF2: 2,  # Song position pointer
    0xF3: 1,  # Song select
}

STATUS_SYSEX = 0xF0
STATUS_SYSEX_END = 0xF7
STATUS_META = 0xFF

# Meta event types
META_SEQUENCE_NUMBER = 0x00
META_CHANNEL_PREFIX = 0x20
META_PORT = 0x21
META_END_OF_TRACK = 0x2F
META_TEMPO = 0x51
META_SMPTE_OFFSET = 0x54
META_TIME_SIGNATURE = 0x58
META_KEY_SIGNATURE = 0x59
META_SEQUENCER_SPECIFIC = 0x7F

META_TEXT_TYPES = {
    0x01: 'Text',
    0x02: 'Copyright',
    0x03: 'Track Name',
    0x04: 'Instrument Name',
    0x05: 'Lyric',
    0x06: 'Marker',
    0x07: 'Cue Point',
    0x08: 'Program Name',
    0x09: 'Device Name',
}

# Control change numbers
CC_BANK_SELECT = 0x00
CC_ALL_SOUND_OFF = 0x78
CC_ALL_NOTES_OFF = 0x79


class MidiEvent(NamedTuple):
    """One decoded event; offset is relative to the track chunk body."""
    offset: int
    delta: int
    status: int
    data: bytes
    meta_type: Optional[int] = None

    @property
    def channel(self) -> int:
        return self.status & 0x0F


def read_vlq(track: ByteRange, offset: int) -> Tuple[int, int]:
    """
    Read a variable-length quantity (at most four bytes).

    Returns:
        (value, offset after the quantity)

    Raises:
        TruncatedError: If the quantity runs past the track
        MalformedStructureError: If the quantity is longer than four bytes
    """
    value = 0
    for i in range(4):
        b = track.uint8(offset + i)
        value = (value << 7) | (b & 0x7F)
        if not b & 0x80:
            return value, offset + i + 1
    raise MalformedStructureError(f"Variable-length quantity at offset {offset} exceeds four bytes.")


def read_event(track: ByteRange, offset: int, running_status: int) -> Tuple[MidiEvent, int, int]:
    """
    Decode the event at offset.

    Args:
        track: Track chunk body
        offset: Offset of the event's delta time
        running_status: Status carried from the previous event (0 for none)

    Returns:
        (event, offset of the next event, running status to carry forward)

    Raises:
        TruncatedError: If the event runs past the track
        MalformedStructureError: If a data byte appears with no running status
    """
    start = offset
    delta, offset = read_vlq(track, offset)

    first = track.uint8(offset)
    if first & 0x80:
        status = first
        offset += 1
    elif running_status:
        status = running_status
    else:
        raise MalformedStructureError(
            f"Data byte 0x{first:02x} at offset {offset} with no running status."
        )

    if status < 0xF0:
        count = CHANNEL_DATA_LENGTHS[status & 0xF0]
        event = MidiEvent(start, delta, status, track.read(offset, count))
        return event, offset + count, status

    # System messages do not carry running status
    if status in (STATUS_SYSEX, STATUS_SYSEX_END):
        end = offset
        while end < len(track) and track.uint8(end) != STATUS_SYSEX_END:
            end += 1
        event = MidiEvent(start, delta, status, track.read(offset, end - offset))
        return event, min(end + 1, len(track)), 0

    if status == STATUS_META:
        meta_type = track.uint8(offset)
        length, data_pos = read_vlq(track, offset + 1)
        event = MidiEvent(start, delta, status, track.read(data_pos, length), meta_type)
        return event, data_pos + length, 0

    count = SYSTEM_DATA_LENGTHS.get(status, 0)
    event = MidiEvent(start, delta, status, track.read(offset, count))
    return event, offset + count, 0


def iter_events(track: ByteRange) -> Iterator[MidiEvent]:
    """Yield the events of a track up to End of Track or the end of the chunk."""
    offset = 0
    running_status = 0
    while offset < len(track):
        event, offset, running_status = read_event(track, offset, running_status)
        yield event
        if event.meta_type == META_END_OF_TRACK:
            return


def decode_text(raw: bytes) -> str:
    """
    Decode meta-event text, whose encoding the file does not declare.

    ASCII is tried first, then the chardet guess, then Latin-1.
    """
    try:
        return raw.decode('ascii')
    except UnicodeDecodeError:
        pass

    detected = chardet.detect(raw)
    encoding = detected.get('encoding')
    if encoding and (detected.get('confidence') or 0.0) > 0.5:
        try:
            return raw.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            logger.debug("chardet guessed %s but decoding failed", encoding)
    return raw.decode('latin-1')


class MidiParser:
    """
    Parser for Standard MIDI Files.

    Chunks are walked in file order. A failure inside a track is written
    after that track's output and the walk moves on to the next chunk.
    """

    def __init__(self, output: ProbeOutput, config: Optional[ProbeConfig] = None):
        self.output = output
        self.config = config or output.config
        self._note_count = 0

    def probe(self, data: ByteRange) -> None:
        """
        Print every chunk of the file.

        Raises:
            InvalidHeaderError: If the MThd chunk is not six bytes long
            TruncatedError: If the MThd chunk is cut short
        """
        pos = 0
        while pos < len(data):
            if data.remaining(pos) < CHUNK_HEADER_SIZE:
                self.output.line("Invalid MIDI file. Chunk header is truncated.")
                return

            chunk_type = data.string(pos, 4)
            length = data.uint32(pos + 4)
            body_pos = pos + CHUNK_HEADER_SIZE

            if chunk_type == 'MThd':
                self._probe_header(data, body_pos, length)
            elif chunk_type == 'MTrk':
                self._probe_track_chunk(data, body_pos, length)
            else:
                logger.debug("Skipping unknown MIDI chunk %r", chunk_type)
                self.output.line(f"-- Unknown chunk: type={chunk_type} len={length}")
            pos = body_pos + length

    def _probe_header(self, data: ByteRange, pos: int, length: int) -> None:
        self.output.line("-- Header")
        if length != 6:
            raise InvalidHeaderError(f"Invalid MIDI file. Header length {length}, expected 6.")
        header = data.sub_range(pos, length)

        file_type = header.uint16(0)
        self.output.line(f"Midi file type: {file_type}")
        if file_type > 2:
            self.output.line("Invalid MIDI file type. Expecting 0, 1, or 2.")
            return
        self.output.line(f"Tracks: {header.uint16(2)}")

        if header.uint8(4) & 0x80:
            self.output.line(f"SMPTE frames per sec: {-header.int8(4)}")
            self.output.line(f"SMPTE ticks per frame: {header.uint8(5)}")
        else:
            self.output.line(f"Ticks per beat: {header.uint16(4)}")

    def _probe_track_chunk(self, data: ByteRange, pos: int, length: int) -> None:
        self.output.line("-- Track")
        self.output.line(f"Chunk length: {length}")

        available = data.remaining(pos)
        if length > available:
            self.output.line(f"Truncated MIDI chunk; {length - available} bytes missing.")
            length = available

        self._note_count = 0
        try:
            for event in iter_events(data.sub_range(pos, length)):
                self._render_event(event)
        except MetaProbeError as e:
            logger.debug("MIDI track at 0x%x failed: %s", pos, e)
            self._flush_notes()
            self.output.line(f"Error: {e.describe()}")
            return
        self._flush_notes()

    def _flush_notes(self) -> None:
        if self._note_count > 0:
            self.output.line(f"{self._note_count} Notes")
            self._note_count = 0

    def _render_event(self, event: MidiEvent) -> None:
        kind = event.status & 0xF0

        if kind == 0x90:
            # Note on with velocity 0 is a note off
            if event.data[1] > 0:
                self._note_count += 1
        elif kind == 0xB0:
            controller, value = event.data[0], event.data[1]
            if controller == CC_BANK_SELECT:
                self.output.line(f"Bank Select: {value}")
            elif controller == CC_ALL_SOUND_OFF:
                self._flush_notes()
                self.output.line(f"AllSoundOff: channel={event.channel}")
            elif controller == CC_ALL_NOTES_OFF:
                self._flush_notes()
                self.output.line(f"AllNotesOff: channel={event.channel}")
        elif kind == 0xC0:
            self._flush_notes()
            self.output.line(f"Program Change: channel={event.channel} program={event.data[0]}")
        elif kind == 0xF0:
            self._flush_notes()
            if event.status == STATUS_META:
                self._render_meta(event)
            elif self.config.verbose and event.status in (STATUS_SYSEX, STATUS_SYSEX_END):
                self.output.line(f"System Exclusive: {len(event.data)} bytes")

    def _render_meta(self, event: MidiEvent) -> None:
        meta_type, data = event.meta_type, event.data

        if meta_type in META_TEXT_TYPES:
            self.output.line(f"{META_TEXT_TYPES[meta_type]}: {decode_text(data)}")
        elif meta_type == META_END_OF_TRACK:
            self.output.line("End of Track")
        elif meta_type == META_SEQUENCE_NUMBER:
            if len(data) == 2:
                self.output.line(f"Sequence Number: {int.from_bytes(data, 'big')}")
        elif meta_type == META_CHANNEL_PREFIX:
            if data:
                self.output.line(f"Midi Channel Prefix: Channel={data[0]}")
        elif meta_type == META_PORT:
            if data:
                self.output.line(f"Midi Port: port={data[0]}")
        elif meta_type == META_TEMPO:
            if len(data) == 3:
                self.output.line(f"Tempo (microseconds/beat): {int.from_bytes(data, 'big')}")
        elif meta_type == META_SMPTE_OFFSET:
            if len(data) == 5:
                hours, minutes, seconds, frames, fraction = data
                self.output.line(
                    f"SMPTE Offset: {hours:02d}:{minutes:02d}:{seconds:02d}.{frames:03d} +{fraction}"
                )
        elif meta_type == META_TIME_SIGNATURE:
            self.output.line("Time Signature")
            self.output.dump(0, data)
        elif meta_type == META_KEY_SIGNATURE:
            self.output.line("Key Signature")
            self.output.dump(0, data)
        elif meta_type == META_SEQUENCER_SPECIFIC:
            self.output.line("Sequencer specific event")
            self.output.dump(0, data)
        else:
            self.output.line(f"Meta event: type=0x{meta_type:02x} len={len(data)}")
            self.output.dump(0, data)
