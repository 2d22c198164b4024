# =============================================================================
# utils/report_writer.py - Snapshot loading and run report export
# =============================================================================

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List

import pandas as pd

from core.exceptions import ConfigurationError
from core.models import INPUT_COLUMNS, RESULT_COLUMNS, RunOutput
from utils.csv_utils import CSVHandler

EXCEL_EXTENSIONS = ('.xlsx', '.xls')
REQUIRED_INPUT_COLUMNS = ['user_principal_name']


def load_snapshot(file_path: str, sheet_name=0) -> List[Dict[str, Any]]:
    """Read caller-supplied accounts from CSV or Excel into row dictionaries"""
    logger = logging.getLogger(__name__)
    path = Path(file_path)

    if path.suffix.lower() in EXCEL_EXTENSIONS:
        frame = pd.read_excel(path, sheet_name=sheet_name, dtype=str).fillna('')
        frame.columns = [CSVHandler.normalize_header(column) for column in frame.columns]
        headers = list(frame.columns)
        rows = frame.to_dict(orient='records')
        logger.info(f"Loaded {len(rows)} rows from Excel file {path}")
    else:
        rows, headers = CSVHandler.read_csv(str(path))

    missing = [column for column in REQUIRED_INPUT_COLUMNS if column not in headers]
    if missing:
        raise ConfigurationError(f"Input file {path} is missing required columns: {missing}")

    return rows


class ReportWriter:
    """Writes results, retry list and summary for a finished run"""

    def __init__(self, output_dir: str):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.logger = logging.getLogger(self.__class__.__name__)

    def write(self, output: RunOutput, excel: bool = True) -> Dict[str, str]:
        """Write every report for the run and return their paths by kind"""
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        result_rows = [entry.to_dict() for entry in output.results]

        paths = {
            'results': str(self.output_dir / f"results_{stamp}.csv"),
            'retry': str(self.output_dir / f"retry_{stamp}.csv"),
            'summary': str(self.output_dir / f"summary_{stamp}.json"),
        }

        CSVHandler.write_csv(result_rows, paths['results'], RESULT_COLUMNS)
        CSVHandler.write_csv(output.retry, paths['retry'], INPUT_COLUMNS)

        with open(paths['summary'], 'w', encoding='utf-8') as file:
            json.dump(output.to_dict(), file, indent=2)

        if excel:
            paths['report'] = str(self.output_dir / f"report_{stamp}.xlsx")
            self.write_excel(output, paths['report'])

        for kind, path in paths.items():
            self.logger.info(f"Wrote {kind}: {path}")
        return paths

    def write_excel(self, output: RunOutput, path: str) -> None:
        results = pd.DataFrame([entry.to_dict() for entry in output.results], columns=RESULT_COLUMNS)
        retry = pd.DataFrame(output.retry, columns=INPUT_COLUMNS)

        summary_rows = [
            ('success', output.success),
            ('error', output.error or ''),
            ('mode', output.mode.value),
            ('dry_run', output.dry_run),
        ]
        summary_dict = output.summary.to_dict()
        skip_reasons = summary_dict.pop('skip_reasons')
        summary_rows.extend(summary_dict.items())
        summary_rows.extend((f"skipped: {reason}", count) for reason, count in skip_reasons.items())
        summary = pd.DataFrame(summary_rows, columns=['metric', 'value'])

        with pd.ExcelWriter(path, engine='openpyxl') as writer:
            summary.to_excel(writer, sheet_name='Summary', index=False)
            results.to_excel(writer, sheet_name='Results', index=False)
            retry.to_excel(writer, sheet_name='Retry', index=False)
