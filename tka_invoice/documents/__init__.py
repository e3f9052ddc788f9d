"""
tka_invoice/documents

Printable invoice output: HTML print context and PDF.
"""

from .pdf import build_batch_pdf, build_invoice_pdf  # noqa: F401
from .printing import InvoiceDocument, build_document, format_invoice_date  # noqa: F401
