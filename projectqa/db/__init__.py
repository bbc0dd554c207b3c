# projectqa/db/__init__.py
from pathlib import Path
from typing import Optional
from .base import Database
from .duckdb import DuckDB
from projectqa.constants import DB_PROVIDER, EXCEL_DATA_DIR

def get_database(project_id: str, data_dir: Optional[str] = None) -> Database:
    """
    Factory function to get the snapshot database of a project.
    The provider comes from the DB_PROVIDER environment variable.
    """
    provider = DB_PROVIDER.lower()

    if provider == "duckdb":
        return DuckDB(Path(data_dir or EXCEL_DATA_DIR) / f"{project_id}.duckdb")
    elif provider == "memory":
        return DuckDB(":memory:")
    else:
        raise ValueError(f"Unknown DB_PROVIDER={provider}")
