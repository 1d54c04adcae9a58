"""Output generation for schedules (PDF, text reports)."""

from consultsched.output.pdf_generator import PDFGenerator
from consultsched.output.report_generator import ReportGenerator

__all__ = [
    "PDFGenerator",
    "ReportGenerator",
]
