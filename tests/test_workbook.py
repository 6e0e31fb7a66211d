import io

import openpyxl
import pytest
from openpyxl.styles import Font
from sheet_normalizer.models import Cell, CellType, Sheet, Workbook
from sheet_normalizer.normalize import normalize_sheet, normalize_workbook
from sheet_normalizer.workbook import (
    WorkbookReadError,
    decode_text,
    output_filename,
    read_workbook,
    used_range_of,
    write_workbook,
)


def _xlsx(build) -> bytes:
    wb = openpyxl.Workbook()
    build(wb)
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def test_output_filename():
    assert output_filename("remessa.xlsx") == "remessa_fixed.xlsx"
    assert output_filename("remessa.XLS") == "remessa_fixed.xlsx"
    assert output_filename("lote.2024.csv") == "lote.2024_fixed.csv"


def test_used_range_of():
    assert used_range_of([]) is None
    assert used_range_of([(10, 0), (2, 4)]) == "C1:K5"


def test_read_xlsx():
    def build(wb):
        ws = wb.active
        ws.title = "Dados"
        ws["A1"] = "ID"
        ws["K2"] = 12.5
        ws["L2"] = "=K2*2"
        ws.column_dimensions["K"].width = 15

    workbook = read_workbook(_xlsx(build), "dados.xlsx")

    assert workbook.source == {"format": "xlsx"}
    sheet = workbook.sheets[0]
    assert sheet.name == "Dados"
    assert sheet.used_range == "A1:L2"
    assert sheet.cells[(0, 0)].value == "ID"
    assert sheet.cells[(0, 0)].type is CellType.TEXT
    assert sheet.cells[(10, 1)].value == 12.5
    assert sheet.cells[(10, 1)].type is CellType.NUMBER
    # openpyxl does not compute formulas, so there is no cached value
    assert sheet.cells[(11, 1)].formula == "K2*2"
    assert sheet.column_widths[10] == 15


def test_read_empty_xlsx_sheet_has_no_used_range():
    workbook = read_workbook(_xlsx(lambda wb: None), "vazia.xlsx")
    assert workbook.sheets[0].used_range is None


def test_xlsx_round_trip_keeps_text_and_widths():
    def build(wb):
        ws = wb.active
        ws["A1"] = "=not a formula"
        ws["K1"] = "1.234,5"

    workbook = read_workbook(_xlsx(build), "in.xlsx")
    workbook.sheets[0].cells[(0, 0)] = Cell(value="=not a formula", type=CellType.TEXT)
    normalize_workbook(workbook)

    content, name, media_type = write_workbook(workbook, "in.xlsx")
    assert name == "in_fixed.xlsx"
    assert media_type.endswith("spreadsheetml.sheet")

    ws = openpyxl.load_workbook(io.BytesIO(content)).active
    assert ws["A1"].value == "=not a formula"
    assert ws["A1"].data_type == "s"
    assert ws["K1"].value == "1234,5000"
    assert ws["K1"].number_format == "@"
    assert ws.column_dimensions["K"].width == 11
    assert ws.column_dimensions["A"].width == pytest.approx(9.6)


def test_write_keeps_formula_of_unvisited_cell():
    sheet = Sheet(
        name="Calc",
        cells={(0, 0): Cell(value=None, type=CellType.NUMBER, formula="1+1")},
        used_range="A1:A1",
    )
    content, _, _ = write_workbook(Workbook(sheets=[sheet]), "calc.xlsx")

    ws = openpyxl.load_workbook(io.BytesIO(content)).active
    assert ws["A1"].value == "=1+1"


def test_read_csv_sniffs_delimiter():
    raw = "id;valor\n1;1.234,56\n2;7\n".encode("utf-8")
    workbook = read_workbook(raw, "lote.csv")

    assert workbook.source["delimiter"] == {"detected": ";", "sniffed": True}
    sheet = workbook.sheets[0]
    assert sheet.used_range == "A1:B3"
    assert sheet.cells[(1, 1)].value == "1.234,56"


def test_csv_output_is_first_sheet_utf8_bom():
    first = Sheet(name="A", cells={(0, 0): Cell(value="a"), (2, 1): Cell(value="1,5000")})
    second = Sheet(name="B", cells={(0, 0): Cell(value="ignored")})

    content, name, _ = write_workbook(Workbook(sheets=[first, second]), "lote.csv")

    assert name == "lote_fixed.csv"
    assert content.startswith(b"\xef\xbb\xbf")
    assert content.decode("utf-8-sig") == 'a,,\n,,"1,5000"\n'


def test_decode_text_strips_bom_and_crlf():
    text, report = decode_text(b"\xef\xbb\xbfa,b\r\n1,2\r\n")
    assert text == "a,b\n1,2\n"
    assert report["decode_used"] == "utf-8-sig"


def test_unsupported_extension():
    with pytest.raises(WorkbookReadError):
        read_workbook(b"whatever", "notes.txt")


@pytest.mark.parametrize("filename", ["broken.xlsx", "broken.xls"])
def test_corrupt_container(filename):
    with pytest.raises(WorkbookReadError) as excinfo:
        read_workbook(b"definitely not a spreadsheet", filename)
    assert filename in str(excinfo.value)
    assert excinfo.value.__cause__ is not None


def test_styled_blank_cells_extend_used_range():
    def build(wb):
        wb.active["C3"].font = Font(bold=True)

    sheet = read_workbook(_xlsx(build), "estilo.xlsx").sheets[0]

    assert sheet.cells == {}
    assert sheet.used_range == "C3:C3"
    report, _ = normalize_sheet(sheet)
    assert report["skipped"] is False


def test_hidden_column_has_no_width_hint():
    def build(wb):
        ws = wb.active
        ws["A1"] = "x"
        ws.column_dimensions["B"].hidden = True
        ws.column_dimensions["K"].width = 15

    sheet = read_workbook(_xlsx(build), "oculta.xlsx").sheets[0]

    assert 1 not in sheet.column_widths
    assert sheet.column_widths[10] == 15


def test_control_characters_are_dropped_from_xlsx_output():
    workbook = Workbook(sheets=[
        Sheet(name="S", cells={(0, 0): Cell(value="a\x01b", type=CellType.TEXT)}, used_range="A1:A1"),
    ])

    content, name, _ = write_workbook(workbook, "x.xls")

    assert name == "x_fixed.xlsx"
    ws = openpyxl.load_workbook(io.BytesIO(content)).active
    assert ws["A1"].value == "ab"
