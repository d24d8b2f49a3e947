import unittest

from depsync.util.serial import normalize_serial, odata_quote, same_serial


class TestUtilSerial(unittest.TestCase):
    def test_normalize_serial(self) -> None:
        self.assertEqual(normalize_serial("  c02abc123 "), "C02ABC123")

    def test_same_serial_is_case_insensitive(self) -> None:
        self.assertTrue(same_serial("abc123", "ABC123"))
        self.assertFalse(same_serial("ABC123", "ABC124"))

    def test_same_serial_empty_never_matches(self) -> None:
        self.assertFalse(same_serial("", ""))
        self.assertFalse(same_serial(None, "ABC"))

    def test_odata_quote_escapes_single_quote(self) -> None:
        self.assertEqual(odata_quote("ABC"), "'ABC'")
        self.assertEqual(odata_quote("A'B"), "'A''B'")


if __name__ == "__main__":
    unittest.main()
