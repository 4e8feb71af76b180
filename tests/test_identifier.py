import unittest

from isrc_meta.identifier import (
    IdentifierCode,
    find_in_text,
    format_code,
    from_compact,
    parse,
    sanitize_text,
    validate,
)
from isrc_meta.models import InvalidFormat


class TestValidate(unittest.TestCase):
    def test_accepts_canonical_and_lowercase(self) -> None:
        self.assertTrue(validate("ZA-80G-25-00001"))
        self.assertTrue(validate("za-80g-25-00001"))
        self.assertTrue(validate("  ZA-80G-25-00001\n"))

    def test_rejects_malformed(self) -> None:
        for value in ("ZA80G2500001", "ZA-80G-25-0001", "Z1-80G-25-00001", "ZA-80G-2A-00001", ""):
            with self.subTest(value=value):
                self.assertFalse(validate(value))

    def test_non_strings_are_invalid(self) -> None:
        self.assertFalse(validate(None))
        self.assertFalse(validate(12345))


class TestFormatCode(unittest.TestCase):
    def test_zero_pads_designation(self) -> None:
        self.assertEqual(format_code("ZA", "80G", "25", 1), "ZA-80G-25-00001")
        self.assertEqual(format_code("ZA", "80G", "25", 99999), "ZA-80G-25-99999")

    def test_uppercases_letters(self) -> None:
        self.assertEqual(format_code("za", "80g", "25", 123), "ZA-80G-25-00123")

    def test_rejects_designation_outside_five_digits(self) -> None:
        with self.assertRaises(InvalidFormat):
            format_code("ZA", "80G", "25", 100000)
        with self.assertRaises(InvalidFormat):
            format_code("ZA", "80G", "25", -1)

    def test_rejects_bad_territory(self) -> None:
        with self.assertRaises(InvalidFormat):
            format_code("ZAF", "80G", "25", 1)

    def test_invalid_format_is_a_value_error(self) -> None:
        with self.assertRaises(ValueError):
            parse("nope")


class TestParse(unittest.TestCase):
    def test_parse_and_render(self) -> None:
        code = parse("za-80g-25-00123")
        self.assertEqual(code, IdentifierCode("ZA", "80G", "25", 123))
        self.assertEqual(str(code), "ZA-80G-25-00123")
        self.assertEqual(code.compact(), "ZA80G2500123")

    def test_from_compact(self) -> None:
        self.assertEqual(str(from_compact("ZA80G2500123")), "ZA-80G-25-00123")
        self.assertEqual(str(from_compact("ZA-80G-25-00123")), "ZA-80G-25-00123")
        self.assertIsNone(from_compact("not a code"))
        self.assertIsNone(from_compact(""))


class TestTextHelpers(unittest.TestCase):
    def test_find_in_text(self) -> None:
        self.assertEqual(find_in_text("(C) 2025 Label, isrc: za-80g-25-00007"), "ZA-80G-25-00007")
        self.assertEqual(find_in_text("ISRC\x00ZA-80G-25-00008"), "ZA-80G-25-00008")
        self.assertIsNone(find_in_text("ZA-80G-25-00009 without label"))

    def test_sanitize_text(self) -> None:
        self.assertEqual(sanitize_text('  <b>"Hello" & \'bye\'</b> '), "bHello  bye/b")
        self.assertEqual(len(sanitize_text("x" * 300)), 100)
        self.assertEqual(sanitize_text(None), "")


if __name__ == "__main__":
    unittest.main()
