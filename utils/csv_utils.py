# =============================================================================
# utils/csv_utils.py - CSV utilities for account snapshots and reports
# =============================================================================

import csv
import logging
import re
from typing import List, Dict, Any, Optional, Tuple


class CSVHandler:
    """Reads account snapshots and writes result / retry files"""

    @staticmethod
    def normalize_header(name: Any) -> str:
        """'User Principal Name' and 'user-principal-name' both become user_principal_name"""
        text = str(name or '').strip().lower()
        return re.sub(r'[\s\-]+', '_', text)

    @staticmethod
    def format_value(value: Any) -> str:
        """Cell text as the input contract expects it: lowercase booleans, blank for None"""
        if value is None:
            return ''
        if isinstance(value, bool):
            return 'true' if value else 'false'
        return str(value)

    @staticmethod
    def read_csv(file_path: str, encoding: str = 'utf-8-sig',
                 delimiter: str = ',') -> Tuple[List[Dict[str, str]], List[str]]:
        """Read a snapshot file; returns (rows, normalized headers), blank lines dropped"""
        logger = logging.getLogger(__name__)

        try:
            with open(file_path, 'r', newline='', encoding=encoding) as file:
                reader = csv.DictReader(file, delimiter=delimiter)
                headers = [CSVHandler.normalize_header(h) for h in reader.fieldnames or []]
                reader.fieldnames = headers

                rows = []
                for raw in reader:
                    # extra cells beyond the header land under the None key
                    row = {key: (value or '').strip() for key, value in raw.items() if key}
                    if any(row.values()):
                        rows.append(row)
        except FileNotFoundError:
            logger.error(f"Input file {file_path} not found")
            raise
        except (csv.Error, UnicodeDecodeError) as e:
            logger.error(f"Could not parse {file_path}: {e}")
            raise

        logger.info(f"Read {len(rows)} rows from {file_path} (columns: {headers})")
        return rows, headers

    @staticmethod
    def write_csv(data: List[Dict[str, Any]], output_path: str,
                  fieldnames: Optional[List[str]] = None) -> None:
        """Write rows; with explicit fieldnames an empty file still gets its header"""
        logger = logging.getLogger(__name__)

        if not data and fieldnames is None:
            logger.warning(f"No rows and no columns for {output_path}, nothing written")
            return

        columns = fieldnames or list(data[0].keys())
        with open(output_path, 'w', newline='', encoding='utf-8') as file:
            writer = csv.DictWriter(file, fieldnames=columns, extrasaction='ignore')
            writer.writeheader()
            for row in data:
                writer.writerow({key: CSVHandler.format_value(value) for key, value in row.items()})

        logger.debug(f"Wrote {len(data)} rows to {output_path}")
