# ========================
# tests/test_csv_row.py
# ========================

import unittest
import os
import sys
from decimal import Decimal

# Add the project root to Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.cur_ingest.cleaning import DEFAULT_REGION, RowCleaner
from src.cur_ingest.csv_row import CsvRowParser
from src.cur_ingest.headers import HeaderResolver
from src.utils.data_generator import CUR_HEADER


class TestCsvRowParser(unittest.TestCase):
    """Test single-line CSV tokenizing."""

    def setUp(self):
        self.parser = CsvRowParser()

    def test_plain_fields_are_trimmed(self):
        self.assertEqual(self.parser.parse("AmazonEC2, i-1 ,10.00"), ["AmazonEC2", "i-1", "10.00"])

    def test_empty_fields_are_kept(self):
        self.assertEqual(self.parser.parse("a,,b,"), ["a", "", "b", ""])
        self.assertEqual(self.parser.parse(""), [""])

    def test_quoted_field_with_commas(self):
        line = 'AmazonS3,"arn:aws:s3:::bucket,with,commas",1.5'
        self.assertEqual(self.parser.parse(line), ["AmazonS3", "arn:aws:s3:::bucket,with,commas", "1.5"])

    def test_doubled_quote_is_literal(self):
        self.assertEqual(self.parser.parse('a,"say ""hi""",b'), ["a", 'say "hi"', "b"])

    def test_unclosed_quote_is_tolerated(self):
        with self.assertLogs('src.cur_ingest.csv_row', level='WARNING'):
            fields = self.parser.parse('a,"b,c')
        self.assertEqual(fields, ["a", "b,c"])

    def test_long_line_is_truncated(self):
        parser = CsvRowParser(max_line_length=5)
        with self.assertLogs('src.cur_ingest.csv_row', level='WARNING'):
            self.assertEqual(parser.parse("abcdefgh"), ["abcde"])

    def test_field_count_is_capped(self):
        parser = CsvRowParser(max_fields=2)
        with self.assertLogs('src.cur_ingest.csv_row', level='WARNING'):
            self.assertEqual(parser.parse("a,b,c"), ["a", "b"])

    def test_internal_failure_gives_empty_list(self):
        with self.assertLogs('src.cur_ingest.csv_row', level='ERROR'):
            self.assertEqual(self.parser.parse(None), [])


class TestRowCleaner(unittest.TestCase):
    """Test conversion of tokenized lines into typed rows."""

    def setUp(self):
        self.cleaner = RowCleaner(HeaderResolver().resolve(list(CUR_HEADER)))

    def _fields(self, **overrides):
        row = {
            'identity/LineItemId': 'li-1',
            'bill/BillingPeriodStartDate': '2025-09-01T00:00:00Z',
            'lineItem/UsageStartDate': '2025-09-03T00:00:00Z',
            'lineItem/UsageEndDate': '2025-09-03T01:00:00Z',
            'lineItem/ProductCode': 'AmazonEC2',
            'lineItem/ResourceId': 'i-0abc',
            'lineItem/UsageType': 'BoxUsage:m5.large',
            'lineItem/UsageAmount': '1',
            'lineItem/UnblendedCost': '0.096',
            'product/instanceType': 'm5.large',
            'product/operatingSystem': 'Linux',
            'product/region': 'eu-west-1',
        }
        row.update(overrides)
        return [row[column] for column in CUR_HEADER]

    def test_typed_row(self):
        row = self.cleaner.clean(self._fields())

        self.assertEqual(row.product_code, 'AmazonEC2')
        self.assertEqual(row.resource_id, 'i-0abc')
        self.assertEqual(row.cost, Decimal('0.096'))
        self.assertEqual(row.usage_amount, Decimal('1'))
        self.assertEqual(row.instance_type, 'm5.large')
        self.assertEqual(row.os, 'linux')
        self.assertEqual(row.region, 'eu-west-1')
        self.assertEqual(row.usage_start, '2025-09-03T00:00:00Z')
        self.assertEqual(row.usage_end, '2025-09-03T01:00:00Z')

    def test_windows_detection(self):
        row = self.cleaner.clean(self._fields(**{'product/operatingSystem': 'Windows Server'}))
        self.assertEqual(row.os, 'windows')

        row = self.cleaner.clean(self._fields(**{'product/operatingSystem': 'RHEL'}))
        self.assertEqual(row.os, 'linux')

    def test_unparseable_numbers_become_none(self):
        for value in ('', 'abc', 'NaN', 'Infinity'):
            row = self.cleaner.clean(self._fields(**{'lineItem/UnblendedCost': value}))
            self.assertIsNone(row.cost, value)

    def test_out_of_range_amounts_are_rejected(self):
        for column, value in (('lineItem/UnblendedCost', '1E+1000000'),
                              ('lineItem/UnblendedCost', '1E+16'),
                              ('lineItem/UsageAmount', '1E-21')):
            with self.assertRaises(ValueError):
                self.cleaner.clean(self._fields(**{column: value}))

        row = self.cleaner.clean(self._fields(**{'lineItem/UnblendedCost': '0E-100'}))
        self.assertTrue(row.cost.is_zero())

    def test_negative_credit_is_kept(self):
        row = self.cleaner.clean(self._fields(**{'lineItem/UnblendedCost': '-2.50'}))
        self.assertEqual(row.cost, Decimal('-2.50'))

    def test_blank_region_and_dates_fall_back(self):
        row = self.cleaner.clean(self._fields(**{
            'product/region': '',
            'lineItem/UsageStartDate': '',
            'lineItem/UsageEndDate': '',
        }))

        self.assertEqual(row.region, DEFAULT_REGION)
        self.assertIsNone(row.usage_start)
        self.assertIsNone(row.usage_end)

    def test_short_row_uses_defaults(self):
        row = self.cleaner.clean(['li-1', '2025-09-01'])

        self.assertEqual(row.product_code, '')
        self.assertIsNone(row.cost)
        self.assertEqual(row.region, DEFAULT_REGION)

    def test_usage_amount_absent_without_column(self):
        cleaner = RowCleaner(HeaderResolver().resolve(['ProductCode', 'UnblendedCost']))
        row = cleaner.clean(['AmazonS3', '1.00'])

        self.assertIsNone(row.usage_amount)
        self.assertEqual(row.cost, Decimal('1.00'))


if __name__ == '__main__':
    unittest.main()
