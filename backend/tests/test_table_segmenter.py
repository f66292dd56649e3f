"""Tests for header detection and table segmentation inside a sheet."""

import unittest

from app.services.setup_assistant.sheets import SheetData

SIDE_BY_SIDE = SheetData(
    name="Resumo",
    rows=[
        ["Cliente", "Projeto", "Valor", "", "Fornecedor", "Valor", "Data"],
        ["Ana", "Casa Ana", "1000", "", "Papelaria", "50", "2024-01-05"],
        ["Bia", "Loja Bia", "2000", "", "Aluguel", "1500", "2024-01-10"],
        ["Caio", "Sala Caio", "3000", "", "", "", ""],
    ],
)

STACKED = SheetData(
    name="CSV",
    rows=[
        ["Cliente", "Projeto", "Valor Total"],
        ["Ana Costa", "Residência Costa", "45.000,00"],
        ["Bruno Lima", "Loja Lima", "30.000,00"],
        [],
        ["Projeto", "Parcela", "Valor"],
        ["Residência Costa", "1/3", "15.000,00"],
        ["Loja Lima", "1/1", "30.000,00"],
    ],
)


class HeaderDetectionTests(unittest.TestCase):
    def test_keyword_row_beats_data_rows(self):
        from app.services.setup_assistant.sheets import detect_header_row

        rows = [
            ["Relatório 2024", "", ""],
            ["Descrição", "Valor", "Vencimento"],
            ["Aluguel", "2.500,00", "10/01/2024"],
        ]
        self.assertEqual(detect_header_row(rows), 1)

    def test_numeric_grid_has_no_header(self):
        from app.services.setup_assistant.sheets import detect_header_row

        self.assertIsNone(detect_header_row([["1", "2"], ["3", "4"]]))

    def test_blank_cell_rules(self):
        from app.services.setup_assistant.sheets import is_blank_cell, is_blank_row

        self.assertTrue(is_blank_cell(None))
        self.assertTrue(is_blank_cell("  "))
        self.assertTrue(is_blank_cell(",;"))
        self.assertFalse(is_blank_cell("0"))
        self.assertTrue(is_blank_row(["", " ", ";"]))


class BoundaryDetectionTests(unittest.TestCase):
    def test_blank_column_between_tables(self):
        from app.services.setup_assistant.table_segmenter import detect_blank_columns, detect_blank_rows

        columns = detect_blank_columns(SIDE_BY_SIDE)
        self.assertEqual(len(columns), 1)
        self.assertEqual(columns[0].position, 3)
        self.assertEqual(columns[0].run_length, 1)
        self.assertGreaterEqual(columns[0].confidence, 0.5)
        self.assertEqual(detect_blank_rows(SIDE_BY_SIDE), [])

    def test_blank_row_between_tables(self):
        from app.services.setup_assistant.table_segmenter import detect_blank_rows

        rows = detect_blank_rows(STACKED)
        self.assertEqual([(b.position, b.run_length) for b in rows], [(3, 1)])
        self.assertEqual(rows[0].confidence, 0.5)

    def test_leading_blank_column_is_not_a_boundary(self):
        from app.services.setup_assistant.table_segmenter import detect_blank_columns

        sheet = SheetData(name="S", rows=[["", "Nome", "Valor"], ["", "Ana", "10"], ["", "Bia", "20"]])
        self.assertEqual(detect_blank_columns(sheet), [])


class SegmentTablesTests(unittest.TestCase):
    def test_single_table_keeps_sheet_name(self):
        from app.services.setup_assistant.table_segmenter import segment_tables

        sheet = SheetData(
            name="Despesas",
            rows=[["Descrição", "Valor"], ["Aluguel", "2500"], ["Luz", "300"]],
        )
        regions = segment_tables(sheet)

        self.assertEqual(len(regions), 1)
        self.assertEqual(regions[0].label, "Despesas")
        self.assertEqual(regions[0].confidence, 1.0)
        self.assertEqual(regions[0].header_row_index, 0)
        self.assertEqual(regions[0].sample_rows, [["Aluguel", "2500"], ["Luz", "300"]])

    def test_side_by_side_tables(self):
        from app.services.setup_assistant.table_segmenter import extract_table, segment_tables

        regions = segment_tables(SIDE_BY_SIDE)

        self.assertEqual([r.label for r in regions], ["Resumo_table0", "Resumo_table1"])
        self.assertEqual(regions[0].col_range, (0, 2))
        self.assertEqual(regions[1].col_range, (4, 6))
        self.assertEqual(regions[1].row_range, (0, 2))

        expenses = extract_table(SIDE_BY_SIDE, regions[1])
        self.assertEqual(expenses.headers, ["Fornecedor", "Valor", "Data"])
        self.assertEqual(expenses.rows, [["Papelaria", "50", "2024-01-05"], ["Aluguel", "1500", "2024-01-10"]])
        self.assertEqual(expenses.row_numbers, [2, 3])

    def test_stacked_tables(self):
        from app.services.setup_assistant.table_segmenter import extract_table, segment_tables

        regions = segment_tables(STACKED)

        self.assertEqual(len(regions), 2)
        self.assertEqual(regions[0].row_range, (0, 2))
        self.assertEqual(regions[1].row_range, (4, 6))
        self.assertEqual(regions[1].header_row_index, 4)

        receivables = extract_table(STACKED, regions[1])
        self.assertEqual(receivables.label, "CSV_table1")
        self.assertEqual(receivables.headers, ["Projeto", "Parcela", "Valor"])
        self.assertEqual(receivables.row_numbers, [6, 7])

    def test_title_row_is_not_a_table(self):
        from app.services.setup_assistant.table_segmenter import segment_tables

        sheet = SheetData(
            name="Planilha",
            rows=[
                ["Relatório financeiro 2024", "", ""],
                ["", "", ""],
                ["Cliente", "Projeto", "Valor"],
                ["Ana", "Casa Ana", "1000"],
                ["Bia", "Loja Bia", "2000"],
            ],
        )
        regions = segment_tables(sheet)

        self.assertEqual(len(regions), 1)
        self.assertEqual(regions[0].label, "Planilha")
        self.assertEqual(regions[0].header_row_index, 2)

    def test_empty_sheet_has_no_regions(self):
        from app.services.setup_assistant.table_segmenter import segment_tables

        self.assertEqual(segment_tables(SheetData(name="Vazia", rows=[])), [])
        self.assertEqual(segment_tables(SheetData(name="Uma", rows=[["Cliente", "Valor"]])), [])

    def test_header_region_without_mixed_tables(self):
        from app.services.setup_assistant.table_segmenter import header_region

        regions = header_region(STACKED)
        self.assertEqual(len(regions), 1)
        self.assertEqual(regions[0].label, "CSV")
        self.assertEqual(regions[0].row_range, (0, 6))

        self.assertEqual(header_region(SheetData(name="N", rows=[["1", "2"], ["3", "4"]])), [])


class ExtractTableTests(unittest.TestCase):
    def test_duplicate_and_empty_headers_are_made_unique(self):
        from app.services.setup_assistant.table_segmenter import extract_table, header_region

        sheet = SheetData(
            name="S",
            rows=[["Valor", "Valor", ""], ["1", "2", "x"], ["", "", ""], ["3", "4", "y"]],
        )
        region = header_region(sheet)[0]
        table = extract_table(sheet, region)

        self.assertEqual(table.headers, ["Valor", "Valor (2)", "Column 3"])
        self.assertEqual(table.rows, [["1", "2", "x"], ["3", "4", "y"]])
        self.assertEqual(table.row_numbers, [2, 4])
