"""
Unit tests for the ID3v2 parser
"""

import io
import struct
import unittest
import zlib

from metaprobe.byte_range import ByteRange
from metaprobe.config import ProbeConfig
from metaprobe.exceptions import InvalidHeaderError, TruncatedError
from metaprobe.id3_frames import GENRES, FrameInfo, FrameKind, get_frame_info
from metaprobe.id3_parser import (
    Id3Parser,
    decode_genre,
    decode_synchsafe,
    parse_frame_flags,
    remove_unsynchronization,
    split_string,
)
from metaprobe.output import ProbeOutput


def synchsafe(n):
    return bytes([(n >> 21) & 0x7F, (n >> 14) & 0x7F, (n >> 7) & 0x7F, n & 0x7F])


def frame(frame_id, body, flags=0):
    return frame_id.encode('latin-1') + struct.pack('>IH', len(body), flags) + body


def frame_v24(frame_id, body, flags=0):
    return frame_id.encode('latin-1') + synchsafe(len(body)) + struct.pack('>H', flags) + body


def tag(body, major=3, flags=0):
    return b'ID3' + bytes([major, 0, flags]) + synchsafe(len(body)) + body


class Id3TestCase(unittest.TestCase):

    def probe(self, data, config=None):
        stream = io.StringIO()
        Id3Parser(ProbeOutput(stream, config)).probe(ByteRange(data))
        return stream.getvalue()


class TestPrimitives(unittest.TestCase):
    """Test synchsafe integers, unsynchronization and string splitting."""

    def test_synchsafe(self):
        self.assertEqual(decode_synchsafe(bytes([0x00, 0x00, 0x02, 0x01])), (2 << 7) | 1)
        self.assertEqual(decode_synchsafe(bytes([0x7F, 0x7F, 0x7F, 0x7F])), 0x0FFFFFFF)

    def test_synchsafe_rejects_high_bit(self):
        with self.assertRaises(InvalidHeaderError):
            decode_synchsafe(bytes([0x00, 0x00, 0x80, 0x00]))

    def test_unsynchronization_removal(self):
        self.assertEqual(remove_unsynchronization(b'\xff\x00\xe0'), b'\xff\xe0')
        self.assertEqual(remove_unsynchronization(b'\xff\x00\x00'), b'\xff\x00')

    def test_unsynchronization_is_idempotent_without_pairs(self):
        data = b'abc\xff\xe0\x00\xff'
        self.assertEqual(remove_unsynchronization(data), data)

    def test_unsynchronization_shrinks_by_pair_count(self):
        data = b'\xff\x00' * 3 + b'xyz' + b'\xff\x00'
        self.assertEqual(len(remove_unsynchronization(data)), len(data) - 4)

    def test_split_string_latin1(self):
        self.assertEqual(split_string(b'owner\x00rest', 0), ('owner', b'rest'))
        self.assertEqual(split_string(b'no terminator', 0), ('no terminator', b''))

    def test_split_string_utf16_is_aligned(self):
        raw = 'Ā'.encode('utf-16-be') + b'\x00\x00' + b'tail'
        self.assertEqual(split_string(raw, 2), ('Ā', b'tail'))


class TestGenre(unittest.TestCase):
    """Test TCON resolution."""

    def test_table_has_126_entries(self):
        self.assertEqual(len(GENRES), 126)
        self.assertEqual(GENRES[125], 'Dance Hall')

    def test_numeric_reference(self):
        self.assertEqual(decode_genre('(17)'), 'Rock')

    def test_out_of_range_is_literal(self):
        self.assertEqual(decode_genre('(999)'), '(999)')

    def test_refinement(self):
        self.assertEqual(decode_genre('(17)Rock'), 'Rock')
        self.assertEqual(decode_genre('(4)Eurodisco'), 'Disco / Eurodisco')

    def test_special_references(self):
        self.assertEqual(decode_genre('(RX)'), 'Remix')
        self.assertEqual(decode_genre('(CR)'), 'Cover')

    def test_escaped_parenthesis(self):
        self.assertEqual(decode_genre('((foo)'), '(foo)')

    def test_bare_number_and_text(self):
        self.assertEqual(decode_genre('17'), 'Rock')
        self.assertEqual(decode_genre('Synthwave'), 'Synthwave')


class TestFrameTable(unittest.TestCase):

    def test_known_and_generic_ids(self):
        self.assertEqual(get_frame_info('TIT2').name, 'Title')
        self.assertEqual(get_frame_info('TCON').kind, FrameKind.GENRE)
        self.assertEqual(get_frame_info('TZZZ').kind, FrameKind.TEXT)
        self.assertEqual(get_frame_info('WZZZ').kind, FrameKind.URL)
        self.assertIsNone(get_frame_info('ZZZZ'))

    def test_frame_flags_by_version(self):
        v23 = parse_frame_flags(3, 0x8080)
        self.assertTrue(v23.tag_alter_preservation)
        self.assertTrue(v23.compression)
        v24 = parse_frame_flags(4, 0x4009)
        self.assertTrue(v24.tag_alter_preservation)
        self.assertTrue(v24.compression)
        self.assertTrue(v24.data_length_indicator)


class TestHeader(Id3TestCase):
    """Test tag header rendering."""

    def test_header_lines(self):
        body = frame('TIT2', b'\x00Song name') + b'\x00' * 10
        output = self.probe(tag(body))
        self.assertTrue(output.startswith(" --- Header ---\n0000: 49 44 33 03 00 00"))
        self.assertIn("FileType: MP3 with ID3v2 metadata.\n", output)
        self.assertIn("ID3v2_Version: 3.0\n", output)
        self.assertIn("Unsynchronization: 0\n", output)
        self.assertIn("ExtendedHeader: 0\n", output)
        self.assertIn("Experimental: 0\n", output)
        self.assertIn(f"TagSize: {len(body)}\n\n", output)
        self.assertIn(" --- Frames ---\nTIT2 (Title): Song name\n", output)
        self.assertIn("Padding: 10 bytes\n", output)

    def test_experimental_flag_has_its_own_bit(self):
        output = self.probe(tag(frame('TIT2', b'\x00x'), flags=0x20))
        self.assertIn("ExtendedHeader: 0\n", output)
        self.assertIn("Experimental: 1\n", output)

    def test_invalid_size_byte(self):
        with self.assertRaises(InvalidHeaderError):
            self.probe(b'ID3\x03\x00\x00\x00\x00\x80\x00')

    def test_invalid_version(self):
        with self.assertRaises(InvalidHeaderError):
            self.probe(b'ID3\xff\x00\x00\x00\x00\x00\x00')

    def test_file_too_short(self):
        with self.assertRaises(TruncatedError):
            self.probe(b'ID3\x03')

    def test_tag_past_end_of_file(self):
        data = b'ID3\x03\x00\x00' + synchsafe(128) + frame('TIT2', b'\x00abc')
        output = self.probe(data)
        self.assertIn("Tag extends past end of file", output)
        self.assertIn("TIT2 (Title): abc", output)

    def test_extended_header_v23(self):
        body = struct.pack('>I', 6) + b'\x00' * 6 + frame('TALB', b'\x00Album')
        output = self.probe(tag(body, flags=0x40))
        self.assertIn("ExtendedHeader: 1\n", output)
        self.assertIn(" --- Extended Header ---\n", output)
        self.assertIn("TALB (Album): Album\n", output)

    def test_extended_header_v24(self):
        body = synchsafe(6) + b'\x01\x00' + frame_v24('TALB', b'\x03Album')
        output = self.probe(tag(body, major=4, flags=0x40))
        self.assertIn("TALB (Album): Album\n", output)

    def test_unsynchronized_tag(self):
        # Frame body on disk: 00 41 FF 00 42, four bytes after unsynchronization
        body = b'TIT2' + struct.pack('>IH', 4, 0) + b'\x00A\xff\x00B'
        output = self.probe(tag(body, flags=0x80))
        self.assertIn("Unsynchronization: 1\n", output)
        self.assertIn("TIT2 (Title): A\xffB\n", output)

    def test_unsynchronized_v24_tag_is_undone_per_frame(self):
        # v2.4 frame sizes count the stuffed bytes on disk
        body = (frame_v24('TIT2', b'\x00A\xff\x00B', flags=0x0002)
                + frame_v24('TALB', b'\x00Album', flags=0x0002))
        output = self.probe(tag(body, major=4, flags=0x80))
        self.assertIn("TIT2 (Title): A\xffB\n", output)
        self.assertIn("TALB (Album): Album\n", output)
        self.assertNotIn("Error", output)


class TestFrames(Id3TestCase):
    """Test per-frame decoding."""

    def frames(self, body, major=3):
        output = self.probe(tag(body, major=major))
        return output.split(" --- Frames ---\n", 1)[1]

    def test_text_encodings(self):
        body = (frame('TPE1', b'\x01' + 'Artist'.encode('utf-16') + b'\x00\x00')
                + frame('TALB', b'\x02' + 'Album'.encode('utf-16-be'))
                + frame('TCOM', b'\x03' + 'Komponist é'.encode('utf-8')))
        output = self.frames(body)
        self.assertIn("TPE1 (Lead performer): Artist\n", output)
        self.assertIn("TALB (Album): Album\n", output)
        self.assertIn("TCOM (Composer): Komponist é\n", output)

    def test_v24_multiple_values_and_synchsafe_size(self):
        text = b'\x03' + b'x' * 150 + b'\x00' + b'y' * 48
        output = self.frames(frame_v24('TPE1', text), major=4)
        self.assertIn("TPE1 (Lead performer): " + 'x' * 150 + ' / ' + 'y' * 48 + "\n", output)

    def test_genre_frame(self):
        output = self.frames(frame('TCON', b'\x00(17)'))
        self.assertIn("TCON (Content type): Rock\n", output)

    def test_user_text_utf16(self):
        body = b'\x01' + b'\xff\xfea\x00' + b'\x00\x00' + b'\xff\xfeb\x00'
        output = self.frames(frame('TXXX', body))
        self.assertIn("TXXX (User defined text): a: b\n", output)

    def test_user_url(self):
        output = self.frames(frame('WXXX', b'\x00home\x00http://example.com'))
        self.assertIn("WXXX (User defined URL link): home: http://example.com\n", output)

    def test_url(self):
        output = self.frames(frame('WOAR', b'http://example.com'))
        self.assertIn("WOAR (Official artist/performer webpage): http://example.com\n", output)

    def test_comment(self):
        output = self.frames(frame('COMM', b'\x00engdesc\x00hello'))
        self.assertIn("COMM (Comments): [eng] desc: hello\n", output)

    def test_comment_without_description(self):
        output = self.frames(frame('COMM', b'\x00eng\x00hello'))
        self.assertIn("COMM (Comments): [eng] hello\n", output)

    def test_lyrics_use_comment_layout(self):
        output = self.frames(frame('USLT', b'\x00eng\x00la la'))
        self.assertIn("USLT (Unsynchronised lyric/text transcription): [eng] la la\n", output)

    def test_private_frame(self):
        output = self.frames(frame('PRIV', b'owner\x00\x01\x02'))
        self.assertIn("PRIV (Private frame): owner, 2 bytes\n0000: 01 02", output)

    def test_picture(self):
        body = b'\x00image/png\x00' + b'\x03' + b'cover\x00' + b'\x89PNG'
        output = self.frames(frame('APIC', body))
        self.assertIn('APIC (Attached picture): image/png, Cover (front), "cover", 4 bytes\n', output)

    def test_unique_file_identifier(self):
        output = self.frames(frame('UFID', b'http://musicbrainz.org\x00abc-123'))
        self.assertIn("UFID (Unique file identifier): http://musicbrainz.org: abc-123\n", output)

    def test_counters(self):
        body = (frame('PCNT', struct.pack('>I', 12))
                + frame('POPM', b'a@b.c\x00\xff' + struct.pack('>I', 7)))
        output = self.frames(body)
        self.assertIn("PCNT (Play counter): 12\n", output)
        self.assertIn("POPM (Popularimeter): a@b.c rating=255 counter=7\n", output)

    def test_binary_and_unknown_frames_are_dumped(self):
        body = frame('GEOB', b'\x01\x02\x03') + frame('ZZZZ', b'\x04')
        output = self.frames(body)
        self.assertIn("GEOB (General encapsulated object): 3 bytes\n0000: 01 02 03", output)
        self.assertIn("ZZZZ: 1 bytes\n0000: 04", output)

    def test_frame_failure_is_inline(self):
        body = frame('COMM', b'\x00en') + frame('TIT2', b'\x00After')
        output = self.frames(body)
        self.assertIn("COMM (Comments): <Error: Truncated: Comment frame has no language code.>\n", output)
        self.assertIn("TIT2 (Title): After\n", output)

    def test_invalid_encoding_byte(self):
        output = self.frames(frame('TIT2', b'\x07abc'))
        self.assertIn("TIT2 (Title): <Error: MalformedStructure: Invalid text encoding 7.>\n", output)

    def test_compressed_frame(self):
        original = b'\x00Zipped'
        body = struct.pack('>I', len(original)) + zlib.compress(original)
        output = self.frames(frame('TIT2', body, flags=0x0080))
        self.assertIn("TIT2 (Title): Zipped\n", output)

    def test_encrypted_frame(self):
        output = self.frames(frame('TIT2', b'\x01secret', flags=0x0040))
        self.assertIn("TIT2 (Title): (encrypted, 7 bytes)\n", output)

    def test_grouped_frame(self):
        output = self.frames(frame('TIT2', b'\x05\x00Grouped', flags=0x0020))
        self.assertIn("TIT2 (Title): Grouped\n", output)

    def test_verbose_prints_frame_flags(self):
        stream_output = self.probe(tag(frame('TIT2', b'\x00x', flags=0x2000)), ProbeConfig(verbosity=1))
        self.assertIn("   flags: 0x2000 read_only\n", stream_output)

    def test_encoding_byte_follows_frame_table(self):
        parser = Id3Parser(ProbeOutput(io.StringIO()))
        payload = b'\x03http://example.com'
        self.assertEqual(parser.decode_frame(FrameInfo('Link', FrameKind.URL, False), payload),
                         '\x03http://example.com')
        self.assertEqual(parser.decode_frame(FrameInfo('Title', FrameKind.TEXT, True), payload),
                         'http://example.com')

    def test_v22_frames(self):
        body = b'TT2' + (6).to_bytes(3, 'big') + b'\x00Title'
        output = self.frames(body, major=2)
        self.assertIn("TIT2 (Title): Title\n", output)

    def test_frame_past_tag_end(self):
        body = b'TIT2' + struct.pack('>IH', 500, 0) + b'\x00abc'
        output = self.frames(body)
        self.assertIn("Error:", output)


if __name__ == '__main__':
    unittest.main()
