# ------------------------------
# Module: duckdb.py
# Description: DuckDB snapshot database for a project's tables
# ------------------------------

import duckdb
import pathlib
from typing import List, Optional
import logging
import pandas as pd

logger = logging.getLogger(__name__)

from .base import Database

class DuckDB(Database):
    def __init__(self, db_path: str = ":memory:"):
        if db_path != ":memory:":
            pathlib.Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.db_path = str(db_path)
        self.con = duckdb.connect(self.db_path)

    def run_query(self, query: str, params: Optional[tuple] = None):
        '''
            Run a SQL query safely across DBs.
        '''
        return self.con.execute(query, params or ())

    def fetchall(self, query: str, params: Optional[tuple] = None):
        '''
            Convenience method to return rows.
        '''
        return self.run_query(query, params).fetchall()

    def fetchdf(self, query: str, params: Optional[tuple] = None) -> pd.DataFrame:
        '''
            DuckDB-specific: directly return a pandas DataFrame.
        '''
        return self.run_query(query, params).df()

    def replace_data_in_table(self, df: pd.DataFrame, table_name: str) -> None:
        '''
            Create or replace the table with the DataFrame's rows.
        '''
        view_name = f"_incoming_{table_name}"
        self.con.register(view_name, df)
        try:
            self.con.execute(f'CREATE OR REPLACE TABLE "{table_name}" AS SELECT * FROM "{view_name}"')
        finally:
            self.con.unregister(view_name)
        logger.info(f"Replaced table {table_name} in {self.db_path} with {len(df)} rows")

    def list_tables(self) -> List[str]:
        rows = self.fetchall(
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema = 'main' ORDER BY table_name"
        )
        return [row[0] for row in rows]

    def close(self) -> None:
        self.con.close()
