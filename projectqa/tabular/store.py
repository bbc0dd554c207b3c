# ------------------------------
# Module: store.py
# Description: In-memory holder of the spreadsheet-derived tables of a project
# ------------------------------

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import pandas as pd

from projectqa.errors import SourceUnavailableError, TableNotFoundError
from projectqa.utils import normalize_column_name, normalize_table_name, stringify_value

logger = logging.getLogger(__name__)


@dataclass
class Table:
    """A named table. Every row holds exactly the declared columns."""
    name: str
    columns: Tuple[str, ...]
    rows: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)


@dataclass(frozen=True)
class Schema:
    """Read-only view of a table used for planning and SQL generation."""
    table: str
    columns: Tuple[str, ...]
    row_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {"table": self.table, "columns": list(self.columns), "rowCount": self.row_count}


class _ReadWriteLock:
    '''
      Many readers or a single writer.
      Imports happen out-of-band, questions only read.
    '''

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False

    @contextmanager
    def read(self):
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self):
        with self._cond:
            while self._writer or self._readers:
                self._cond.wait()
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


def _normalize_columns(rows: List[Mapping[str, Any]]) -> Tuple[Tuple[str, ...], List[Tuple[Any, str]]]:
    '''
      Collect the columns of the rows in first-seen order and normalize them.
      Returns the normalized columns and the (original key, normalized name) pairs.
    '''
    original_keys: List[Any] = []
    seen = set()
    for row in rows:
        for key in row.keys():
            if key not in seen:
                seen.add(key)
                original_keys.append(key)

    mapping: List[Tuple[Any, str]] = []
    used: Dict[str, int] = {}
    for i, key in enumerate(original_keys):
        base = normalize_column_name(key, i)
        name = base
        # Headers like "Amount" and "amount " collapse to one identifier
        while name in used:
            used[base] += 1
            name = f"{base}_{used[base]}"
        used.setdefault(name, 1)
        mapping.append((key, name))

    return tuple(name for _, name in mapping), mapping


class TabularStore:
    '''
      Holds the tables of one project.
      No I/O happens here, see TabularRepository.persist/load for snapshots.
    '''

    def __init__(self):
        self._tables: Dict[str, Table] = {}
        self._lock = _ReadWriteLock()

    def import_table(self, name: str, rows: Iterable[Mapping[str, Any]]) -> Optional[Table]:
        """
        Import rows as a table.

        Args:
            name: The raw table name (usually the sheet name), normalized here
            rows: The rows as column -> value mappings

        Returns:
            The stored table, or None when there are no rows (the table is skipped)
        """
        rows = list(rows)
        if not rows:
            logger.info(f"Skipping empty table '{name}'")
            return None

        with self._lock.write():
            table_name = normalize_table_name(name, len(self._tables))
            columns, mapping = _normalize_columns(rows)
            normalized_rows = [
                {column: row.get(key, "") for key, column in mapping}
                for row in rows
            ]

            if table_name in self._tables:
                logger.warning(f"Table '{table_name}' already exists, replacing it")

            table = Table(name=table_name, columns=columns, rows=normalized_rows)
            self._tables[table_name] = table

        logger.info(f"Imported table '{table_name}' with {len(columns)} columns and {len(normalized_rows)} rows")
        return table

    def get_table(self, name: str) -> Table:
        with self._lock.read():
            table = self._tables.get(name.strip().lower())
        if table is None:
            raise TableNotFoundError(f"Table '{name}' not found")
        return table

    def has_table(self, name: str) -> bool:
        with self._lock.read():
            return name.strip().lower() in self._tables

    def remove_table(self, name: str) -> bool:
        with self._lock.write():
            return self._tables.pop(name.strip().lower(), None) is not None

    def table_names(self) -> List[str]:
        with self._lock.read():
            return list(self._tables.keys())

    def list_schemas(self) -> List[Schema]:
        with self._lock.read():
            return [
                Schema(table=t.name, columns=t.columns, row_count=t.row_count)
                for t in self._tables.values()
            ]

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._tables)


class TabularRepository:
    '''
      Registry of the tabular stores, one per project.
    '''

    def __init__(self, data_dir: Optional[str] = None):
        self.data_dir = data_dir
        self._stores: Dict[str, TabularStore] = {}
        self._lock = threading.Lock()

    def get_store(self, project_id: str) -> TabularStore:
        with self._lock:
            store = self._stores.get(project_id)
            if store is None:
                store = TabularStore()
                self._stores[project_id] = store
            return store

    def has_tables(self, project_id: str) -> bool:
        with self._lock:
            store = self._stores.get(project_id)
        return store is not None and len(store) > 0

    def drop(self, project_id: str) -> None:
        with self._lock:
            self._stores.pop(project_id, None)

    def persist(self, project_id: str) -> int:
        '''
          Write the project's tables to its database snapshot.
          Returns the number of tables written.
        '''
        from projectqa.db import get_database

        store = self.get_store(project_id)
        db = get_database(project_id, self.data_dir)
        try:
            count = 0
            for name in store.table_names():
                table = store.get_table(name)
                df = pd.DataFrame(table.rows, columns=list(table.columns))
                # Mixed-type columns are stored as text
                for column in df.columns:
                    if df[column].dtype == object:
                        df[column] = df[column].map(stringify_value)
                db.replace_data_in_table(df, table.name)
                count += 1
            logger.info(f"Persisted {count} tables for project {project_id}")
            return count
        finally:
            db.close()

    def load(self, project_id: str) -> TabularStore:
        '''
          Load the project's tables from its database snapshot into memory.
        '''
        from projectqa.db import get_database

        store = self.get_store(project_id)
        try:
            db = get_database(project_id, self.data_dir)
        except Exception as e:
            raise SourceUnavailableError(f"Tabular snapshot for project {project_id} unavailable: {e}") from e

        try:
            for table_name in db.list_tables():
                df = db.fetchdf(f'SELECT * FROM "{table_name}"')
                store.import_table(table_name, df.to_dict(orient="records"))
        finally:
            db.close()

        logger.info(f"Loaded {len(store)} tables for project {project_id}")
        return store
