import io
import os
import shutil
import tempfile
import unittest

import pandas as pd

from excel_import.errors import ParseError
from excel_import.utils.excel_reader import ExcelReader


class TestExcelReader(unittest.TestCase):
    def setUp(self):
        self.directory = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.directory, True)

    def test_reads_first_sheet_of_workbook(self):
        path = os.path.join(self.directory, 'elements.xlsx')
        df = pd.DataFrame({
            'Structure Number': ['S-1', 'S-2', None],
            'Qty': [2, 3.5, None],
            'Level': ['L1', None, None],
        })
        with pd.ExcelWriter(path, engine='openpyxl') as writer:
            df.to_excel(writer, sheet_name='Elements', index=False)
            pd.DataFrame({'Ignored': [1]}).to_excel(writer, sheet_name='Other', index=False)

        rows = ExcelReader.read_rows(path)

        # The fully blank third row is dropped
        self.assertEqual(rows, [
            {'Structure Number': 'S-1', 'Qty': '2', 'Level': 'L1'},
            {'Structure Number': 'S-2', 'Qty': '3.5', 'Level': ''},
        ])

    def test_workbook_keeps_literal_na_text(self):
        path = os.path.join(self.directory, 'elements.xlsx')
        pd.DataFrame({
            'Structure Number': ['S-1'],
            'Level': ['NA'],
            'Part Mark No': ['N/A'],
            'Member Type': ['None'],
            'Drawing No': ['null'],
        }).to_excel(path, index=False, engine='openpyxl')

        rows = ExcelReader.read_rows(path)

        self.assertEqual(rows, [{'Structure Number': 'S-1', 'Level': 'NA', 'Part Mark No': 'N/A',
                                 'Member Type': 'None', 'Drawing No': 'null'}])

    def test_reads_csv_stream_by_file_name(self):
        stream = io.BytesIO(b"Structure Number,Qty\nS-1,2\n,\nS-2,\n")
        rows = ExcelReader.read_rows(stream, file_name='upload.csv')
        self.assertEqual(rows, [{'Structure Number': 'S-1', 'Qty': '2'}, {'Structure Number': 'S-2', 'Qty': ''}])

    def test_header_only_file_is_a_parse_error(self):
        path = os.path.join(self.directory, 'empty.csv')
        with open(path, 'w') as f:
            f.write("Structure Number,Qty\n")
        with self.assertRaises(ParseError):
            ExcelReader.read_rows(path)

    def test_corrupt_workbook_is_a_parse_error(self):
        path = os.path.join(self.directory, 'broken.xlsx')
        with open(path, 'wb') as f:
            f.write(b'this is not a zip archive')
        with self.assertRaises(ParseError):
            ExcelReader.read_rows(path)


if __name__ == '__main__':
    unittest.main()
