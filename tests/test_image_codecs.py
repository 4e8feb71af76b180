import struct
import unittest
import zlib

from isrc_meta.codecs.image import JpegCodec, PngCodec
from isrc_meta.models import EmbedFields, MalformedContainer, UnsupportedContainer

SOI = b"\xff\xd8"
EOI = b"\xff\xd9"
PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


def jpeg_segment(marker: int, payload: bytes) -> bytes:
    return bytes((0xFF, marker)) + struct.pack(">H", len(payload) + 2) + payload


def make_jpeg() -> bytes:
    app0 = jpeg_segment(0xE0, b"JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00")
    dqt = jpeg_segment(0xDB, bytes(65))
    scan = jpeg_segment(0xDA, b"\x01\x01\x00\x00\x3f\x00") + b"\x12\x34\xff\x00\x56"
    return SOI + app0 + dqt + scan + EOI


def png_chunk(chunk_type: bytes, data: bytes) -> bytes:
    crc = zlib.crc32(chunk_type + data) & 0xFFFFFFFF
    return struct.pack(">I", len(data)) + chunk_type + data + struct.pack(">I", crc)


def make_png(with_idat: bool = True, *extra: bytes) -> bytes:
    ihdr = png_chunk(b"IHDR", struct.pack(">IIBBBBB", 1, 1, 8, 2, 0, 0, 0))
    idat = png_chunk(b"IDAT", zlib.compress(b"\x00\xff\x00\x00")) if with_idat else b""
    return PNG_SIGNATURE + ihdr + b"".join(extra) + idat + png_chunk(b"IEND", b"")


def iter_png_chunks(data: bytes):
    offset = 8
    while offset < len(data):
        length = struct.unpack_from(">I", data, offset)[0]
        chunk_type = data[offset + 4 : offset + 8]
        body = data[offset + 8 : offset + 8 + length]
        crc = struct.unpack_from(">I", data, offset + 8 + length)[0]
        yield chunk_type, body, crc
        offset += 12 + length


class TestJpegCodec(unittest.TestCase):
    def setUp(self) -> None:
        self.codec = JpegCodec()

    def test_embed_into_minimal_jpeg(self) -> None:
        out = self.codec.embed(SOI + EOI, EmbedFields(code="ZA-80G-25-00001"))
        self.assertTrue(out.startswith(SOI + b"\xff\xe1"))
        self.assertTrue(out.endswith(EOI))
        self.assertEqual(self.codec.extract(out), "ZA-80G-25-00001")

    def test_embed_after_app_segments_leaves_rest_untouched(self) -> None:
        jpeg = make_jpeg()
        app0_end = 2 + 4 + 14
        out = self.codec.embed(jpeg, EmbedFields(code="ZA-80G-25-00002"))
        self.assertEqual(out[:app0_end], jpeg[:app0_end])
        self.assertEqual(out[app0_end : app0_end + 2], b"\xff\xe1")
        self.assertTrue(out.endswith(jpeg[app0_end:]))
        self.assertEqual(self.codec.extract(out), "ZA-80G-25-00002")

    def test_exif_payload_points_at_user_comment(self) -> None:
        payload = JpegCodec.exif_payload("ZA-80G-25-00003")
        self.assertTrue(payload.startswith(b"Exif\x00\x00II*\x00"))
        tiff = payload[6:]
        ifd0 = struct.unpack_from("<I", tiff, 4)[0]
        count, tag, _type, _n, exif_ifd = struct.unpack_from("<HHHII", tiff, ifd0)
        self.assertEqual((count, tag), (1, 0x8769))
        count, tag, field_type, length, value_offset = struct.unpack_from("<HHHII", tiff, exif_ifd)
        self.assertEqual((count, tag, field_type), (1, 0x9286, 7))
        comment = tiff[value_offset : value_offset + length]
        self.assertEqual(comment, b"ASCII\x00\x00\x00ISRC:ZA-80G-25-00003")

    def test_reembed_drops_previous_code(self) -> None:
        first = self.codec.embed(make_jpeg(), EmbedFields(code="ZA-80G-25-00004"))
        second = self.codec.embed(first, EmbedFields(code="ZA-80G-25-00005"))
        self.assertEqual(second.count(b"ISRC:"), 1)
        self.assertEqual(len(second), len(first))
        self.assertEqual(self.codec.extract(second), "ZA-80G-25-00005")

    def test_foreign_app1_is_kept(self) -> None:
        foreign = jpeg_segment(0xE1, b"http://ns.adobe.com/xap/1.0/\x00<x:xmpmeta/>")
        jpeg = SOI + foreign + EOI
        out = self.codec.embed(jpeg, EmbedFields(code="ZA-80G-25-00006"))
        self.assertIn(foreign, out)
        self.assertEqual(self.codec.extract(out), "ZA-80G-25-00006")

    def test_extract_from_app13_copyright_text(self) -> None:
        app13 = jpeg_segment(0xED, b"Photoshop 3.0\x00(C) 2025 Label ISRC: za-80g-25-00077")
        jpeg = SOI + app13 + EOI
        self.assertEqual(self.codec.extract(jpeg), "ZA-80G-25-00077")
        field = self.codec.locate(jpeg)
        self.assertEqual(jpeg[field.offset : field.offset + field.length], b"za-80g-25-00077")

    def test_extract_without_code(self) -> None:
        self.assertIsNone(self.codec.extract(make_jpeg()))
        self.assertIsNone(self.codec.extract(SOI + EOI))

    def test_truncated_segment_is_malformed(self) -> None:
        with self.assertRaises(MalformedContainer):
            self.codec.extract(SOI + b"\xff\xe1\x00\x40Exif")

    def test_not_a_jpeg(self) -> None:
        with self.assertRaises(UnsupportedContainer):
            self.codec.extract(PNG_SIGNATURE)


class TestPngCodec(unittest.TestCase):
    def setUp(self) -> None:
        self.codec = PngCodec()

    def test_embed_inserts_text_chunk_before_idat(self) -> None:
        png = make_png()
        out = self.codec.embed(png, EmbedFields(code="ZA-80G-25-00010"))
        chunks = list(iter_png_chunks(out))
        types = [chunk_type for chunk_type, _body, _crc in chunks]
        self.assertEqual(types, [b"IHDR", b"tEXt", b"IDAT", b"IEND"])
        _type, body, crc = chunks[1]
        self.assertEqual(body, b"ISRC\x00ZA-80G-25-00010")
        self.assertEqual(crc, zlib.crc32(b"tEXt" + body) & 0xFFFFFFFF)
        self.assertEqual(self.codec.extract(out), "ZA-80G-25-00010")

    def test_reembed_keeps_a_single_isrc_chunk(self) -> None:
        comment = png_chunk(b"tEXt", b"Comment\x00hello")
        first = self.codec.embed(make_png(True, comment), EmbedFields(code="ZA-80G-25-00011"))
        second = self.codec.embed(first, EmbedFields(code="ZA-80G-25-00012"))
        types = [chunk_type for chunk_type, _body, _crc in iter_png_chunks(second)]
        self.assertEqual(types, [b"IHDR", b"tEXt", b"tEXt", b"IDAT", b"IEND"])
        self.assertIn(comment, second)
        self.assertEqual(self.codec.extract(second), "ZA-80G-25-00012")

    def test_reembed_removes_earlier_itxt_code(self) -> None:
        old = png_chunk(b"iTXt", b"ISRC\x00\x00\x00en\x00\x00ZA-80G-25-00017")
        out = self.codec.embed(make_png(True, old), EmbedFields(code="ZA-80G-25-00018"))
        types = [chunk_type for chunk_type, _body, _crc in iter_png_chunks(out)]
        self.assertEqual(types, [b"IHDR", b"tEXt", b"IDAT", b"IEND"])
        self.assertNotIn(old, out)
        self.assertEqual(self.codec.extract(out), "ZA-80G-25-00018")

    def test_extract_from_itxt(self) -> None:
        plain = png_chunk(b"iTXt", b"ISRC\x00\x00\x00en\x00\x00ZA-80G-25-00013")
        self.assertEqual(self.codec.extract(make_png(True, plain)), "ZA-80G-25-00013")
        packed = png_chunk(
            b"iTXt", b"Description\x00\x01\x00\x00\x00" + zlib.compress(b"ISRC: ZA-80G-25-00014")
        )
        self.assertEqual(self.codec.extract(make_png(True, packed)), "ZA-80G-25-00014")

    def test_locate_points_at_code_bytes(self) -> None:
        out = self.codec.embed(make_png(), EmbedFields(code="ZA-80G-25-00015"))
        field = self.codec.locate(out)
        self.assertEqual(out[field.offset : field.offset + field.length], b"ZA-80G-25-00015")

    def test_missing_idat_is_malformed(self) -> None:
        with self.assertRaises(MalformedContainer):
            self.codec.embed(make_png(False), EmbedFields(code="ZA-80G-25-00016"))

    def test_extract_without_code(self) -> None:
        self.assertIsNone(self.codec.extract(make_png()))

    def test_truncated_chunk_is_malformed(self) -> None:
        with self.assertRaises(MalformedContainer):
            png = make_png()
            self.codec.extract(png[: png.index(b"IDAT") + 6])


if __name__ == "__main__":
    unittest.main()
