"""
Unit tests for the EXIF/TIFF walker
"""

import io
import struct
import unittest

from metaprobe.byte_range import ByteRange
from metaprobe.config import ProbeConfig
from metaprobe.exceptions import InvalidHeaderError, MalformedStructureError
from metaprobe.exif_parser import (
    EXIF_HEADER,
    XMP_HEADER,
    ExifParser,
    ExifTagType,
    resolve_tag_type,
)
from metaprobe.output import ProbeOutput


def tiff_header(endian, ifd0=8):
    magic = b'II*\x00' if endian == '<' else b'MM\x00*'
    return magic + struct.pack(endian + 'I', ifd0)


def entry(endian, tag, type_code, count, value):
    return struct.pack(endian + 'HHI', tag, type_code, count) + value.ljust(4, b'\x00')


def ifd(endian, entries, next_offset=0):
    return struct.pack(endian + 'H', len(entries)) + b''.join(entries) + struct.pack(endian + 'I', next_offset)


def jpeg_with_app1(payload):
    segment = b'\xff\xe1' + struct.pack('>H', len(payload) + 2) + payload
    return b'\xff\xd8' + segment + b'\xff\xd9'


# Single-entry IFD at offset 8 ends at 26
DATA_AFTER_ONE_ENTRY = 26


class ExifTestCase(unittest.TestCase):

    def probe_tiff(self, data, config=None):
        stream = io.StringIO()
        ExifParser(ProbeOutput(stream, config)).probe_tiff(ByteRange(data))
        return stream.getvalue()


class TestTiffHeader(ExifTestCase):
    """Test byte-order selection."""

    def test_little_endian_inline_short(self):
        data = tiff_header('<') + ifd('<', [entry('<', 0x0112, 3, 1, struct.pack('<H', 6))])
        self.assertEqual(self.probe_tiff(data), "ifd0\n   Orientation(0x0112): 6\n")

    def test_big_endian_inline_short(self):
        data = tiff_header('>') + ifd('>', [entry('>', 0x0112, 3, 1, struct.pack('>H', 6))])
        self.assertEqual(self.probe_tiff(data), "ifd0\n   Orientation(0x0112): 6\n")

    def test_invalid_header(self):
        with self.assertRaises(InvalidHeaderError):
            self.probe_tiff(b'XX*\x00\x08\x00\x00\x00')
        with self.assertRaises(InvalidHeaderError):
            self.probe_tiff(b'II\x2b\x00\x08\x00\x00\x00')


class TestEntryValues(ExifTestCase):
    """Test inline and indirect value decoding."""

    def test_indirect_ascii(self):
        data = (tiff_header('<')
                + ifd('<', [entry('<', 0x010F, 2, 6, struct.pack('<I', DATA_AFTER_ONE_ENTRY))])
                + b'Canon\x00')
        self.assertEqual(self.probe_tiff(data), "ifd0\n   Make(0x010f): Canon\n")

    def test_inline_ascii(self):
        data = tiff_header('<') + ifd('<', [entry('<', 0x010F, 2, 4, b'Sny\x00')])
        self.assertIn("Make(0x010f): Sny", self.probe_tiff(data))

    def test_rational(self):
        data = (tiff_header('>')
                + ifd('>', [entry('>', 0x011A, 5, 1, struct.pack('>I', DATA_AFTER_ONE_ENTRY))])
                + struct.pack('>II', 72, 1))
        self.assertIn("XResolution(0x011a): 72/1", self.probe_tiff(data))

    def test_multiple_shorts_are_space_separated(self):
        data = (tiff_header('<')
                + ifd('<', [entry('<', 0x0102, 3, 3, struct.pack('<I', DATA_AFTER_ONE_ENTRY))])
                + struct.pack('<HHH', 8, 8, 8))
        self.assertIn("BitsPerSample(0x0102): 8 8 8", self.probe_tiff(data))

    def test_xp_title_is_utf16(self):
        text = 'Hi'.encode('utf-16-le') + b'\x00\x00'
        data = (tiff_header('<')
                + ifd('<', [entry('<', 0x9C9B, 1, len(text), struct.pack('<I', DATA_AFTER_ONE_ENTRY))])
                + text)
        self.assertIn("XPTitle(0x9c9b): Hi", self.probe_tiff(data))

    def test_maker_note_reports_byte_count(self):
        data = tiff_header('<') + ifd('<', [entry('<', 0x927C, 7, 1234, struct.pack('<I', 0))])
        self.assertIn("MakerNote(0x927c): 1234 bytes.", self.probe_tiff(data))

    def test_blob_dump_keeps_entry_indentation(self):
        data = (tiff_header('<')
                + ifd('<', [entry('<', 0xBEEF, 7, 20, struct.pack('<I', DATA_AFTER_ONE_ENTRY))])
                + bytes(range(20)))
        lines = self.probe_tiff(data).splitlines()
        self.assertTrue(lines[1].startswith("   0xbeef(0xbeef): 0000: 00 01 02"))
        self.assertTrue(lines[2].startswith("      0010: 10 11 12 13"))

    def test_unknown_tag_and_type(self):
        data = tiff_header('<') + ifd('<', [entry('<', 0xBEEF, 99, 2, b'')])
        self.assertIn("0xbeef(0xbeef): Unknown type 99, count=2", self.probe_tiff(data))

    def test_value_out_of_range_is_inline_error(self):
        data = tiff_header('<') + ifd('<', [
            entry('<', 0x010F, 2, 10, struct.pack('<I', 1000)),
            entry('<', 0x0112, 3, 1, struct.pack('<H', 1)),
        ])
        output = self.probe_tiff(data)
        self.assertIn("Make(0x010f): <Error:", output)
        self.assertIn("Orientation(0x0112): 1", output)

    def test_user_comment(self):
        decode = ExifParser.decode_user_comment
        self.assertEqual(decode(b'ASCII\x00\x00\x00hello'), 'hello')
        self.assertEqual(decode(b'JIS\x00\x00\x00\x00\x00abc'), 'Unsupported: JIS String')
        self.assertEqual(decode(b'UNICODE\x00' + 'hi'.encode('utf-16-le')), 'hi')
        self.assertEqual(decode(b'UNICODE\x00' + 'hi'.encode('utf-16-be'), '>'), 'hi')
        self.assertEqual(decode(b'\x00' * 8 + b'xyz'), '')
        self.assertEqual(decode(b'ASCII'), '')

    def test_override_table_wins(self):
        self.assertEqual(resolve_tag_type(0x8769, 4), ExifTagType.SUB_IFD)
        self.assertEqual(resolve_tag_type(0x9286, 7), ExifTagType.USER_COMMENT)
        self.assertEqual(resolve_tag_type(0x0112, 3), ExifTagType.SHORT)
        self.assertEqual(resolve_tag_type(0x0112, 1002), ExifTagType.UNKNOWN)


class TestDirectoryChain(ExifTestCase):
    """Test IFD chaining, sub-IFDs and cycle guards."""

    def test_sub_ifd_reported_after_entries(self):
        sub_ifd_offset = DATA_AFTER_ONE_ENTRY
        rational_offset = sub_ifd_offset + 18
        data = (tiff_header('<')
                + ifd('<', [entry('<', 0x8769, 4, 1, struct.pack('<I', sub_ifd_offset))])
                + ifd('<', [entry('<', 0x829A, 5, 1, struct.pack('<I', rational_offset))])
                + struct.pack('<II', 1, 60))
        self.assertEqual(
            self.probe_tiff(data),
            "ifd0\n"
            "   ExifOffset(0x8769): SubIfd reported below.\n"
            "ExifSubIFD\n"
            "   ExposureTime(0x829a): 1/60\n",
        )

    def test_second_sub_ifd_is_malformed(self):
        data = tiff_header('<') + ifd('<', [
            entry('<', 0x8769, 4, 1, struct.pack('<I', 100)),
            entry('<', 0x8769, 4, 1, struct.pack('<I', 200)),
        ])
        with self.assertRaises(MalformedStructureError):
            self.probe_tiff(data)

    def test_chain_continues_to_ifd1(self):
        ifd1_offset = DATA_AFTER_ONE_ENTRY
        data = (tiff_header('<')
                + ifd('<', [entry('<', 0x0112, 3, 1, struct.pack('<H', 1))], next_offset=ifd1_offset)
                + ifd('<', [entry('<', 0x0103, 3, 1, struct.pack('<H', 6))]))
        output = self.probe_tiff(data)
        self.assertIn("ifd1\n   Compression(0x0103): 6\n", output)

    def test_self_referencing_chain_stops(self):
        data = tiff_header('<') + ifd('<', [entry('<', 0x0112, 3, 1, struct.pack('<H', 1))], next_offset=8)
        output = self.probe_tiff(data)
        self.assertEqual(output.count("ifd"), 1)
        self.assertIn("already visited", output)

    def test_ifd_count_limit(self):
        data = (tiff_header('<')
                + ifd('<', [entry('<', 0x0112, 3, 1, struct.pack('<H', 1))], next_offset=DATA_AFTER_ONE_ENTRY)
                + ifd('<', [entry('<', 0x0112, 3, 1, struct.pack('<H', 1))]))
        output = self.probe_tiff(data, ProbeConfig(max_ifd_count=1))
        self.assertIn("IFD limit of 1 reached", output)
        self.assertNotIn("ifd1", output)

    def test_verbose_detail(self):
        data = tiff_header('<') + ifd('<', [entry('<', 0x0112, 3, 1, struct.pack('<H', 1))])
        output = self.probe_tiff(data, ProbeConfig(verbosity=1))
        self.assertIn("Byte Order: Little-Endian", output)
        self.assertIn("ifd0 Offset: 8", output)
        self.assertIn("   IfdEntries: 1", output)
        self.assertIn("      entry=00, type=SHORT, count=1", output)


class TestJpegContainer(unittest.TestCase):
    """Test APP1 segment discovery."""

    def probe_jpeg(self, data):
        stream = io.StringIO()
        ExifParser(ProbeOutput(stream)).probe_jpeg(ByteRange(data))
        return stream.getvalue()

    def test_exif_segment(self):
        tiff = (tiff_header('<')
                + ifd('<', [entry('<', 0x010F, 2, 6, struct.pack('<I', DATA_AFTER_ONE_ENTRY))])
                + b'Canon\x00')
        output = self.probe_jpeg(jpeg_with_app1(EXIF_HEADER + tiff))
        self.assertEqual(output, "ifd0\n   Make(0x010f): Canon\n")

    def test_missing_soi(self):
        with self.assertRaises(InvalidHeaderError):
            self.probe_jpeg(b'\x00\x00\xff\xd9')

    def test_xmp_segment(self):
        packet = (
            b'<x:xmpmeta xmlns:x="adobe:ns:meta/">'
            b'<rdf:RDF xmlns:rdf="http://www.w3.org/1999/02/22-rdf-syntax-ns#">'
            b'<rdf:Description xmlns:dc="http://purl.org/dc/elements/1.1/"'
            b' xmlns:xmp="http://ns.adobe.com/xap/1.0/" xmp:CreatorTool="TestTool">'
            b'<dc:format>image/jpeg</dc:format>'
            b'</rdf:Description></rdf:RDF></x:xmpmeta>'
        )
        output = self.probe_jpeg(jpeg_with_app1(XMP_HEADER + packet))
        self.assertIn("XMP\n", output)
        self.assertIn("   xmp:CreatorTool: TestTool\n", output)
        self.assertIn("   dc:format: image/jpeg\n", output)

    def test_malformed_xmp(self):
        output = self.probe_jpeg(jpeg_with_app1(XMP_HEADER + b'<x:xmpmeta><unclosed>'))
        self.assertIn("Invalid XMP packet", output)

    def test_truncated_segment_is_reported(self):
        data = b'\xff\xd8\xff\xe1\x01\x00' + EXIF_HEADER + b'II'
        self.assertIn("Error:", self.probe_jpeg(data))


if __name__ == '__main__':
    unittest.main()
