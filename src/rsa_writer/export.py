"""Export of generated copy as responsive search ad bulk-upload files.

One row per URL that has generated copy, in job order, with the columns
Google Ads Editor expects for responsive search ads::

    Final URL, Headline 1 .. Headline 15, Description 1 .. Description 4

Missing headlines or descriptions are written as empty cells.  Both methods
are async for consistency with the rest of the pipeline and return raw
bytes ready to be written to disk or streamed.
"""

from __future__ import annotations

import csv
import io

import structlog

from rsa_writer.core.schemas import MAX_DESCRIPTIONS, MAX_HEADLINES, Job

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Column definitions
# ---------------------------------------------------------------------------

#: Header row shared by the CSV and XLSX exporters.
RSA_COLUMNS: list[str] = (
    ["Final URL"]
    + [f"Headline {i}" for i in range(1, MAX_HEADLINES + 1)]
    + [f"Description {i}" for i in range(1, MAX_DESCRIPTIONS + 1)]
)


def _pad(values: list[str], width: int) -> list[str]:
    return list(values[:width]) + [""] * (width - len(values[:width]))


def copy_rows(job: Job) -> list[list[str]]:
    """Return one data row per URL with generated copy, in job URL order."""
    rows: list[list[str]] = []
    for url in job.urls:
        copy = job.generated_copy.get(url)
        if copy is None:
            continue
        rows.append(
            [url]
            + _pad(copy.headlines, MAX_HEADLINES)
            + _pad(copy.descriptions, MAX_DESCRIPTIONS)
        )
    return rows


class CopyExporter:
    """Export a job's generated copy to CSV or XLSX.

    Typical usage::

        exporter = CopyExporter()
        data = await exporter.export_csv(job)
        Path("ads.csv").write_bytes(data)
    """

    # ------------------------------------------------------------------
    # CSV
    # ------------------------------------------------------------------

    async def export_csv(self, job: Job) -> bytes:
        """Export *job*'s copy as a UTF-8 CSV file.

        Returns:
            Raw UTF-8 encoded CSV bytes including the BOM marker so that
            spreadsheet applications detect the encoding without prompting.
        """
        buf = io.StringIO()
        writer = csv.writer(buf, lineterminator="\r\n")
        writer.writerow(RSA_COLUMNS)
        rows = copy_rows(job)
        writer.writerows(rows)

        logger.info("export.csv", job_id=str(job.id), rows=len(rows))
        return "\ufeff".encode("utf-8") + buf.getvalue().encode("utf-8")

    # ------------------------------------------------------------------
    # XLSX
    # ------------------------------------------------------------------

    async def export_xlsx(self, job: Job, sheet_name: str = "Responsive search ads") -> bytes:
        """Export *job*'s copy as an XLSX workbook.

        The header row is bold and frozen; columns are sized to the wider of
        the header or the longest value.

        Args:
            job: The job to export.
            sheet_name: Worksheet tab name (Excel allows at most 31 chars).

        Returns:
            Raw XLSX bytes.
        """
        import openpyxl
        from openpyxl.styles import Font
        from openpyxl.utils import get_column_letter

        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = sheet_name[:31]

        ws.append(RSA_COLUMNS)
        for cell in ws[1]:
            cell.font = Font(bold=True)
        ws.freeze_panes = "A2"

        rows = copy_rows(job)
        for row in rows:
            ws.append(row)

        for col_idx, header in enumerate(RSA_COLUMNS, start=1):
            width = max([len(header)] + [len(row[col_idx - 1]) for row in rows])
            ws.column_dimensions[get_column_letter(col_idx)].width = min(width + 2, 80)

        buf = io.BytesIO()
        wb.save(buf)
        logger.info("export.xlsx", job_id=str(job.id), rows=len(rows))
        return buf.getvalue()
