"""Tests for source adapters: bytes -> labelled rows."""

import io
import json

import pytest

from esg_ingestion.adapters import (
    CsvSourceAdapter,
    JsonSourceAdapter,
    SourceProbe,
    XlsxSourceAdapter,
    probe,
    read_rows,
    resolve_format,
)
from esg_ingestion.adapters.base import build_labels, detect_header_row, is_year_like
from esg_kernel.exceptions import EmptyInputError, UnsupportedFormatError


class TestHeaderDetection:
    def test_keyword_first_cell_is_header(self):
        grid = [["Report title"], ["Metric", "2022", "2023"], ["Coal", "1", "2"]]
        assert detect_header_row(grid) == 1

    def test_two_year_like_cells_make_a_header(self):
        grid = [["ABC Ltd"], ["", "FY22", "FY23"], ["Coal", "1", "2"]]
        assert detect_header_row(grid) == 1

    def test_no_header_detected(self):
        assert detect_header_row([["a", "b"], ["1", "2"]]) is None

    def test_search_limit(self):
        grid = [["x"]] * 3 + [["Metric", "2022"]]
        assert detect_header_row(grid, max_search=3) is None

    def test_marker_row_is_never_a_header(self):
        grid = [["FY Summary", "FY23", "FY24"], ["Coal", "1", "2"]]
        assert detect_header_row(grid) == 0
        assert detect_header_row(grid, markers={"FY Summary"}) is None

    def test_labels_deduplicated_and_filled(self):
        assert build_labels(["Metric", "", "Metric"], 4) == ["Metric", "Column_2", "Metric_1", "Column_4"]

    @pytest.mark.parametrize("value", ["2022", "FY25", "FY 2024", 2023])
    def test_year_like(self, value):
        assert is_year_like(value)

    @pytest.mark.parametrize("value", ["Metric", "12500", "2023→2024", None])
    def test_not_year_like(self, value):
        assert not is_year_like(value)


class TestCsvSourceAdapter:
    def test_rows_keyed_by_detected_header(self):
        content = b"Report,,\nMetric,2022,2023\nCoal,1,2\n"
        rows = CsvSourceAdapter().read(content, {})
        assert [r.row_number for r in rows] == [1, 3]
        assert rows[1].cells == {"Metric": "Coal", "2022": "1", "2023": "2"}

    def test_rows_above_header_are_kept(self):
        content = b"ENVIRONMENTAL (E) METRICS,,\nMetric,2022,2023\nCoal,1,2\n"
        rows = CsvSourceAdapter().read(content, {})
        assert rows[0].first_cell == "ENVIRONMENTAL (E) METRICS"

    def test_blank_rows_dropped_and_cells_stripped(self):
        content = b"Metric,2022\n,\n  Coal  , 12 \n"
        rows = CsvSourceAdapter().read(content, {})
        assert len(rows) == 1
        assert rows[0].cells == {"Metric": "Coal", "2022": "12"}

    def test_bom_is_stripped(self):
        content = "\ufeffMetric,2022\nCoal,1\n".encode("utf-8")
        rows = CsvSourceAdapter().read(content, {})
        assert rows[0].labels == ("Metric", "2022")

    def test_custom_delimiter(self):
        rows = CsvSourceAdapter().read(b"Metric;2022\nCoal;1\n", {"delimiter": ";"})
        assert rows[0].cells == {"Metric": "Coal", "2022": "1"}

    def test_explicit_header_row(self):
        rows = CsvSourceAdapter().read(b"a,b\nc,d\ne,f\n", {"header_row": 1})
        assert [r.cells for r in rows] == [{"c": "a", "d": "b"}, {"c": "e", "d": "f"}]

    def test_without_header_no_row_is_consumed(self):
        content = "Key Governance Policies:,\n• Code of Ethics,\n• External Auditors: Deloitte,\n".encode("utf-8")
        rows = CsvSourceAdapter().read(content, {})
        assert [r.row_number for r in rows] == [1, 2, 3]
        assert rows[0].cells == {"Column_1": "Key Governance Policies:"}
        assert CsvSourceAdapter().probe(content, {}).header_row is None

    def test_marker_option_protects_marker_row(self):
        content = b"FY Summary,FY23,FY24\nCoal,1,2\n"
        rows = CsvSourceAdapter().read(content, {"section_markers": {"FY Summary"}})
        assert [r.first_cell for r in rows] == ["FY Summary", "Coal"]
        assert rows[1].labels == ("Column_1", "Column_2", "Column_3")

    def test_empty_input_raises(self):
        with pytest.raises(EmptyInputError) as exc_info:
            CsvSourceAdapter().read(b"", {})
        assert exc_info.value.source_format == "csv"

    def test_header_only_raises(self):
        with pytest.raises(EmptyInputError):
            CsvSourceAdapter().read(b"Metric,2022\n", {})

    def test_undecodable_bytes_raise(self):
        with pytest.raises(EmptyInputError):
            CsvSourceAdapter().read(b"\xff\xfe\xfa", {})

    def test_probe(self):
        content = b"Metric,2022\n" + b"".join(f"M{i},{i}\n".encode() for i in range(8))
        result = CsvSourceAdapter().probe(content, {})
        assert isinstance(result, SourceProbe)
        assert result.row_count == 8
        assert result.columns == ("Metric", "2022")
        assert len(result.sample_rows) == 5
        assert result.header_row == 0
        assert result.detected_delimiter == ","


class TestJsonSourceAdapter:
    def test_array_of_objects(self):
        content = json.dumps([{"Metric": "Coal", "2022": 12}, {"Metric": "Solar", "2022": 3}]).encode()
        rows = JsonSourceAdapter().read(content, {})
        assert [r.cells for r in rows] == [{"Metric": "Coal", "2022": 12}, {"Metric": "Solar", "2022": 3}]

    def test_json_lines(self):
        content = b'{"Metric": "Coal"}\n\n{"Metric": "Solar"}\n'
        rows = JsonSourceAdapter().read(content, {"format": "jsonl"})
        assert [r.first_cell for r in rows] == ["Coal", "Solar"]

    def test_nested_path(self):
        content = json.dumps({"data": {"rows": [{"Metric": "Coal"}]}}).encode()
        rows = JsonSourceAdapter().read(content, {"json_path": "data.rows"})
        assert rows[0].cells == {"Metric": "Coal"}

    def test_single_object_is_one_row(self):
        rows = JsonSourceAdapter().read(b'{"Metric": "Coal", "2022": 1}', {})
        assert len(rows) == 1

    def test_array_of_arrays_uses_header_detection(self):
        content = json.dumps([["Title"], ["Metric", "2022"], ["Coal", 1200.0]]).encode()
        rows = JsonSourceAdapter().read(content, {})
        assert rows[-1].cells == {"Metric": "Coal", "2022": 1200}

    def test_non_finite_numbers_become_text(self):
        content = b'[["ENVIRONMENTAL (E) METRICS"], ["Metric", "2022", "2023"], ["Coal (tons)", NaN, Infinity]]'
        rows = JsonSourceAdapter().read(content, {})
        assert rows[-1].cells == {"Metric": "Coal (tons)", "2022": "nan", "2023": "inf"}

    def test_non_finite_numbers_in_objects(self):
        rows = JsonSourceAdapter().read(b'[{"Metric": "Coal", "2022": NaN}]', {})
        assert rows[0].cells["2022"] == "nan"

    def test_malformed_json_raises(self):
        with pytest.raises(EmptyInputError) as exc_info:
            JsonSourceAdapter().read(b"[{", {})
        assert "malformed" in exc_info.value.reason

    def test_empty_array_raises(self):
        with pytest.raises(EmptyInputError):
            JsonSourceAdapter().read(b"[]", {})

    def test_probe_collects_union_of_keys(self):
        content = json.dumps([{"a": 1}, {"b": 2}]).encode()
        result = JsonSourceAdapter().probe(content, {})
        assert result.columns == ("a", "b")
        assert result.row_count == 2


class TestXlsxSourceAdapter:
    @staticmethod
    def _workbook(rows, title="Sheet"):
        openpyxl = pytest.importorskip("openpyxl")
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = title
        for row in rows:
            ws.append(row)
        buf = io.BytesIO()
        wb.save(buf)
        return buf.getvalue()

    def test_reads_active_sheet(self):
        content = self._workbook([
            ["ENVIRONMENTAL (E) METRICS"],
            ["Metric", 2022, 2023],
            ["Total Waste (tons)", 1200, 1450.0],
        ])
        rows = XlsxSourceAdapter().read(content, {})
        assert rows[0].first_cell == "ENVIRONMENTAL (E) METRICS"
        assert rows[1].cells == {"Metric": "Total Waste (tons)", "2022": 1200, "2023": 1450}

    def test_sheet_by_name(self):
        content = self._workbook([["Metric", "2022"], ["Coal", 5]], title="Data")
        rows = XlsxSourceAdapter().read(content, {"sheet": "Data"})
        assert rows[0].cells["2022"] == 5

    def test_missing_sheet_raises(self):
        content = self._workbook([["Metric", "2022"], ["Coal", 5]])
        with pytest.raises(EmptyInputError):
            XlsxSourceAdapter().read(content, {"sheet": "Nope"})

    def test_not_a_workbook_raises(self):
        pytest.importorskip("openpyxl")
        with pytest.raises(EmptyInputError) as exc_info:
            XlsxSourceAdapter().read(b"plain text", {})
        assert exc_info.value.source_format == "excel"


class TestFormatRegistry:
    @pytest.mark.parametrize("alias,canonical", [
        ("csv", "csv"), ("CSV", "csv"), ("excel", "excel"), ("xlsx", "excel"),
        ("json", "json"), ("jsonl", "json"),
    ])
    def test_aliases(self, alias, canonical):
        assert resolve_format(alias)[0] == canonical

    def test_jsonl_implies_line_format(self):
        assert resolve_format("jsonl")[1] == {"format": "jsonl"}

    @pytest.mark.parametrize("fmt", ["pdf", "", "xls"])
    def test_unsupported_format(self, fmt):
        with pytest.raises(UnsupportedFormatError):
            read_rows(b"a,b\n1,2\n", fmt)

    def test_read_rows_dispatches(self):
        rows = read_rows(b'{"Metric": "Coal"}\n', "jsonl")
        assert rows[0].first_cell == "Coal"

    def test_probe_dispatches(self):
        result = probe(b"Metric,2022\nCoal,1\n", "csv")
        assert result.row_count == 1
