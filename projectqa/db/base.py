# projectqa/db/base.py
from abc import ABC, abstractmethod
from typing import Any, List, Optional
import pandas as pd

class Database(ABC):
    """Abstract base class that defines the interface for tabular snapshot databases."""

    @abstractmethod
    def run_query(self, query: str, params: Optional[tuple] = None) -> Any:
        """Run a SQL query safely across DBs."""
        pass

    @abstractmethod
    def fetchall(self, query: str, params: Optional[tuple] = None) -> list:
        """Convenience method to return all rows."""
        pass

    @abstractmethod
    def fetchdf(self, query: str, params: Optional[tuple] = None) -> pd.DataFrame:
        """Return query results as a pandas DataFrame."""
        pass

    @abstractmethod
    def replace_data_in_table(self, df: pd.DataFrame, table_name: str) -> None:
        """Replace all data in a table with the rows of a DataFrame.

        Args:
            df: The rows to store
            table_name: Name of the table to replace data in
        """
        pass

    @abstractmethod
    def list_tables(self) -> List[str]:
        """Names of all user tables in the database."""
        pass

    @abstractmethod
    def close(self) -> None:
        pass
