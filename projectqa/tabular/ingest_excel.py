# ------------------------------
# Module: ingest_excel.py
# Description: Import every sheet of an uploaded workbook into a project's tabular store
# ------------------------------

import logging
import re
from typing import Any, List

import pandas as pd

from projectqa.constants import MAX_IDENTIFIER_LENGTH
from projectqa.tabular.store import Schema, TabularStore
from projectqa.utils import Timer, normalize_table_name

logger = logging.getLogger(__name__)

EXCEL_EXTENSIONS = ('.xlsx', '.xls', '.xlsm', '.xlsb')

# pandas names blank header cells "Unnamed: 3"
_UNNAMED_HEADER = re.compile(r"^Unnamed: \d+$")


def is_excel_file(file_name: str) -> bool:
    return file_name.lower().endswith(EXCEL_EXTENSIONS)


def _clean_header(header: Any) -> Any:
    if isinstance(header, str) and _UNNAMED_HEADER.match(header):
        return ""
    return header


def _unique_table_name(sheet_name: str, index: int, used: set) -> str:
    base = normalize_table_name(sheet_name, index)
    name = base
    suffix = 2
    while name in used:
        tail = f"_{suffix}"
        name = base[:MAX_IDENTIFIER_LENGTH - len(tail)] + tail
        suffix += 1
    used.add(name)
    return name


def sheet_to_rows(df: pd.DataFrame) -> List[dict]:
    '''
      Turn a sheet into rows. Blank cells become "" and blank headers are
      left for the store to name col_<n>.
    '''
    df = df.rename(columns={col: _clean_header(col) for col in df.columns})
    df = df.dropna(how="all")
    df = df.astype(object).where(pd.notna(df), "")
    return df.to_dict(orient="records")


def import_excel(file, store: TabularStore) -> List[Schema]:
    '''
        Import all sheets of a workbook into the store.

        Args:
            file: A path or file-like object of the workbook
            store: The project's tabular store

        Returns:
            The schemas of the imported tables (empty sheets are skipped)
    '''
    with Timer("Excel import") as timer:
        sheets = pd.read_excel(file, sheet_name=None)

        used_names = set(store.table_names())
        imported: List[Schema] = []
        for i, (sheet_name, df) in enumerate(sheets.items()):
            rows = sheet_to_rows(df)
            if not rows:
                logger.info(f"Sheet '{sheet_name}' is empty, skipped")
                continue

            table_name = _unique_table_name(str(sheet_name), i, used_names)
            table = store.import_table(table_name, rows)
            if table is not None:
                imported.append(Schema(table=table.name, columns=table.columns, row_count=table.row_count))

    logger.info(
        f"Excel import completed: {len(imported)} tables, "
        f"{sum(s.row_count for s in imported)} rows in {timer.duration_ms:.2f}ms"
    )
    return imported
