"""
tka_invoice/aggregation.py

Groups invoice lines into display rows for the PDF and the print view.

Lines that share a "baris" (row number) are rendered as ONE table row:
- worker names: distinct, in line order
- description: each line's job name, followed by its description text when
  that text differs from the job name
- row total: sum of the line totals

Both renderers call group_for_display(); there is no second copy of this logic.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from itertools import groupby
from typing import Iterable

from .errors import InvalidArgument


@dataclass
class RowGroup:
    row_number: int
    baris: int
    worker_names: list[str] = field(default_factory=list)
    description_lines: list[str] = field(default_factory=list)
    row_total: Decimal = Decimal("0")

    @property
    def workers_text(self) -> str:
        return "\n".join(self.worker_names)

    @property
    def description_text(self) -> str:
        return "\n".join(self.description_lines)


def _line_sort_key(line):
    return (line.baris, line.line_order or 0)


def group_for_display(lines: Iterable) -> list[RowGroup]:
    """
    Aggregate invoice lines by baris.

    Each line must expose baris, line_order, worker_name, job_name,
    job_description_text and line_total (InvoiceLine does). Groups come back
    ordered by baris and numbered 1..n regardless of gaps in baris.
    """
    lines = list(lines)
    for line in lines:
        if line.baris is None or line.baris <= 0:
            raise InvalidArgument(f"Line baris must be positive, got {line.baris!r}")

    groups: list[RowGroup] = []
    ordered = sorted(lines, key=_line_sort_key)

    for row_number, (baris, members) in enumerate(groupby(ordered, key=lambda ln: ln.baris), start=1):
        group = RowGroup(row_number=row_number, baris=baris)
        for line in members:
            name = (line.worker_name or "").strip()
            if name and name not in group.worker_names:
                group.worker_names.append(name)

            job_name = (line.job_name or "").strip()
            if job_name:
                group.description_lines.append(job_name)
            text = (line.job_description_text or "").strip()
            if text and text != job_name:
                group.description_lines.append(text)

            group.row_total += Decimal(str(line.line_total or 0))
        groups.append(group)

    return groups
