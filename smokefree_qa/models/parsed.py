"""Parsed source document model for the preprocessing pipeline."""

from pydantic import BaseModel


class ParsedDocument(BaseModel):
    """The result of extracting text from one source file.

    PDF text carries ``[PAGE_n]`` markers at the start of every page so
    chunks can be traced back to page numbers.
    """

    title: str
    raw_text: str
    source_path: str
    file_format: str  # "pdf", "txt"
    page_count: int = 0
