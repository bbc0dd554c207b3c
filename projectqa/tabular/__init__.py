"""
Tabular package: in-memory tables of a project and their spreadsheet import.
"""

from .store import Schema, Table, TabularRepository, TabularStore
from .ingest_excel import import_excel, is_excel_file

__all__ = [
    'Schema',
    'Table',
    'TabularRepository',
    'TabularStore',
    'import_excel',
    'is_excel_file',
]
