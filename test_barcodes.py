import unittest

from barcodes import barcode_variants, extract_embedded_quantity, format_qty, quantity_or_default


class EmbeddedQuantityTest(unittest.TestCase):
    def test_short_codes_carry_no_quantity(self):
        for code in ("", "1", "000123", "123456789012", "12345678901ab", "ABC-DEF"):
            self.assertEqual(extract_embedded_quantity(code), 0.0, code)

    def test_last_six_digits_are_ten_thousandths(self):
        self.assertEqual(extract_embedded_quantity("2901234025001"), 2.5)
        self.assertEqual(extract_embedded_quantity("0000000025001234"), 0.12)

    def test_truncates_instead_of_rounding(self):
        self.assertEqual(extract_embedded_quantity("1234567150099"), 15.0)
        self.assertEqual(extract_embedded_quantity("1234567009999"), 0.99)

    def test_exact_hundredths_survive(self):
        self.assertEqual(extract_embedded_quantity("2000000002900"), 0.29)

    def test_zero_tail_means_no_quantity(self):
        self.assertEqual(extract_embedded_quantity("1234567000000"), 0.0)
        # 0.0099 truncates to nothing
        self.assertEqual(extract_embedded_quantity("1234567000099"), 0.0)

    def test_non_digits_are_ignored(self):
        self.assertEqual(extract_embedded_quantity(" 29-0123-4025001 "), 2.5)

    def test_default_quantity(self):
        self.assertEqual(quantity_or_default("123"), 1.0)
        self.assertEqual(quantity_or_default("1234567000000"), 1.0)
        self.assertEqual(quantity_or_default("2901234025001"), 2.5)


class BarcodeVariantsTest(unittest.TestCase):
    def test_leading_zeros_and_padding(self):
        self.assertEqual(
            barcode_variants("000123"),
            ["000123", "123", "00000123", "000000000123", "0000000000123"],
        )

    def test_digits_projection_and_padding_of_trimmed_input(self):
        self.assertEqual(
            barcode_variants("  ABC-12 "),
            ["ABC-12", "12", "00ABC-12", "000000ABC-12", "0000000ABC-12"],
        )

    def test_full_length_code_has_single_variant(self):
        self.assertEqual(barcode_variants("4006381333931"), ["4006381333931"])

    def test_all_zero_code_keeps_no_empty_variant(self):
        variants = barcode_variants("0000")
        self.assertNotIn("", variants)
        self.assertEqual(variants[0], "0000")
        self.assertIn("0000000000000", variants)

    def test_blank_input(self):
        self.assertEqual(barcode_variants(""), [])
        self.assertEqual(barcode_variants("   "), [])
        self.assertEqual(barcode_variants(None), [])

    def test_deterministic_and_unique(self):
        first = barcode_variants("0042-7")
        self.assertEqual(first, barcode_variants("0042-7"))
        self.assertEqual(len(first), len(set(first)))


class FormatQtyTest(unittest.TestCase):
    def test_formats(self):
        self.assertEqual(format_qty(2.0), "2")
        self.assertEqual(format_qty(2.5), "2.5")
        self.assertEqual(format_qty(1.25), "1.25")
        self.assertEqual(format_qty(0.125), "0.125")


if __name__ == "__main__":
    unittest.main()
