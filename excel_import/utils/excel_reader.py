import logging
import os

import pandas as pd

from excel_import.errors import ParseError

logger = logging.getLogger(__name__)

CSV_EXTENSIONS = ('.csv',)


# Reads the first sheet of an uploaded spreadsheet (or a CSV export of one)
# into plain row dictionaries keyed by header, in file order.
class ExcelReader:
    def __init__(self):
        pass

    @staticmethod
    def _cell_to_text(value):
        if value is None:
            return ''
        if isinstance(value, float):
            if pd.isna(value):
                return ''
            if value.is_integer():
                return str(int(value))
            return str(value)
        if value is pd.NaT or (not isinstance(value, str) and pd.isna(value)):
            return ''
        return str(value).strip()

    @staticmethod
    def read_data_frame(source, file_name=None):
        """
        Loads the source into a non-lossy 'object' DataFrame.

        Args:
            source: A path or a binary file-like object.
            file_name (str): Used to pick the format when source is a stream.
        """
        name = file_name or (source if isinstance(source, (str, os.PathLike)) else getattr(source, 'name', '')) or ''
        extension = os.path.splitext(str(name))[1].lower()
        try:
            if extension in CSV_EXTENSIONS:
                return pd.read_csv(source, dtype='object', keep_default_na=False, skip_blank_lines=True)
            # Literal 'NA', 'N/A' or 'None' cells are data, not missing values
            return pd.read_excel(source, sheet_name=0, dtype='object', engine='openpyxl',
                                 keep_default_na=False, na_values=[])
        except Exception as e:
            logger.error("Failed to parse spreadsheet %s: %s", name, e)
            raise ParseError(f"Error parsing Excel file: {e}") from e

    @staticmethod
    def read_rows(source, file_name=None):
        """
        Returns the data rows of the source as a list of dictionaries.

        Blank cells become empty strings and rows that are entirely blank are
        dropped. Raises ParseError if the file is unreadable or holds no rows.
        """
        df = ExcelReader.read_data_frame(source, file_name=file_name)
        columns = [str(column).strip() for column in df.columns]
        rows = []
        for values in df.itertuples(index=False, name=None):
            row = {column: ExcelReader._cell_to_text(value) for column, value in zip(columns, values)}
            if any(value != '' for value in row.values()):
                rows.append(row)
        if not rows:
            raise ParseError("Excel file is empty or invalid")
        logger.info("Parsed %d rows from %s", len(rows), file_name or source)
        return rows
