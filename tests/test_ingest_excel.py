from __future__ import annotations

from pathlib import Path

import pandas as pd

from projectqa.tabular import TabularStore, import_excel, is_excel_file
from projectqa.utils import stringify_value


def _write_workbook(path: Path, sheets: dict) -> None:
    with pd.ExcelWriter(path) as writer:
        for name, df in sheets.items():
            df.to_excel(writer, sheet_name=name, index=False)


class TestImportExcel:
    def test_is_excel_file(self):
        assert is_excel_file("Report.XLSX")
        assert is_excel_file("legacy.xls")
        assert not is_excel_file("notes.pdf")

    def test_imports_every_non_empty_sheet(self, tmp_path: Path):
        workbook = tmp_path / "data.xlsx"
        _write_workbook(workbook, {
            "Staff List": pd.DataFrame({"Name": ["Ann", "Bob"], "Age": [30, None]}),
            "Empty": pd.DataFrame(),
            "2024 Budget": pd.DataFrame({"Item": ["Laptops"], "Cost": [1200.5]}),
        })

        store = TabularStore()
        schemas = import_excel(workbook, store)

        assert [s.table for s in schemas] == ["staff_list", "t_2024_budget"]
        assert store.table_names() == ["staff_list", "t_2024_budget"]

        staff = store.get_table("staff_list")
        assert staff.columns == ("name", "age")
        assert stringify_value(staff.rows[0]["age"]) == "30"
        assert staff.rows[1]["age"] == ""

    def test_sheet_names_colliding_after_normalization(self, tmp_path: Path):
        workbook = tmp_path / "data.xlsx"
        _write_workbook(workbook, {
            "Sales": pd.DataFrame({"a": [1]}),
            "sales!": pd.DataFrame({"a": [2]}),
        })

        store = TabularStore()
        schemas = import_excel(workbook, store)

        assert [s.table for s in schemas] == ["sales", "sales_2"]
        assert store.get_table("sales_2").rows == [{"a": 2}]

    def test_existing_tables_are_not_overwritten(self, tmp_path: Path):
        workbook = tmp_path / "data.xlsx"
        _write_workbook(workbook, {"Sales": pd.DataFrame({"a": [1]})})

        store = TabularStore()
        store.import_table("sales", [{"b": "kept"}])
        schemas = import_excel(workbook, store)

        assert schemas[0].table == "sales_2"
        assert store.get_table("sales").rows == [{"b": "kept"}]
