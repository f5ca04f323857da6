"""Source document parser supporting PDF and plain-text formats."""

import logging
from pathlib import Path

import chardet

from smokefree_qa.models.parsed import ParsedDocument

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS: dict[str, str] = {
    ".pdf": "pdf",
    ".txt": "txt",
    ".md": "txt",
}


class DocumentParser:
    """Parses regulation files into a ParsedDocument representation.

    PDF pages are prefixed with ``[PAGE_n]`` markers (1-based) so that
    downstream chunks can cite page numbers.
    """

    def parse(self, file_path: str | Path) -> ParsedDocument:
        """Parse a source file into a ParsedDocument.

        Args:
            file_path: Path to the source file.

        Returns:
            A ParsedDocument containing raw text and metadata.

        Raises:
            FileNotFoundError: If file_path does not exist.
            ValueError: If the file format is not supported.
        """
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")

        file_format = self._detect_format(path)

        if file_format == "pdf":
            raw_text, page_count = self._parse_pdf(path)
        else:
            raw_text, page_count = self._parse_txt(path), 0

        return ParsedDocument(
            title=path.stem,
            raw_text=raw_text,
            source_path=str(path),
            file_format=file_format,
            page_count=page_count,
        )

    def _detect_format(self, file_path: Path) -> str:
        """Map the file extension to a format id; raises ValueError if unsupported."""
        file_format = SUPPORTED_FORMATS.get(file_path.suffix.lower())
        if file_format is None:
            supported = ", ".join(SUPPORTED_FORMATS)
            raise ValueError(f"Unsupported file format: {file_path.name} (supported: {supported})")
        return file_format

    def _parse_pdf(self, file_path: Path) -> tuple[str, int]:
        """Extract whitespace-normalized page text and the page count.

        A file pymupdf cannot open is logged and yields no text.
        """
        import fitz  # type: ignore[import-untyped]

        try:
            with fitz.open(str(file_path)) as doc:
                pages = []
                for number, page in enumerate(doc, start=1):
                    text = " ".join(page.get_text("text").split())
                    pages.append(f"[PAGE_{number}] {text}")
                return "\n\n".join(pages), len(pages)
        except Exception:
            logger.exception("Failed to parse PDF: %s", file_path)
            return "", 0

    def _parse_txt(self, file_path: Path) -> str:
        """Read a text file, trying UTF-8, the chardet guess, then Korean legacy codecs."""
        raw_bytes = file_path.read_bytes()
        for encoding in self._candidate_encodings(raw_bytes):
            try:
                return raw_bytes.decode(encoding)
            except (UnicodeDecodeError, LookupError):
                continue

        logger.error("Could not decode %s; replacing invalid bytes", file_path)
        return raw_bytes.decode("utf-8", errors="replace")

    @staticmethod
    def _candidate_encodings(raw_bytes: bytes) -> list[str]:
        candidates = ["utf-8"]
        detected = chardet.detect(raw_bytes)
        guess = detected.get("encoding")
        if guess:
            if (detected.get("confidence") or 0) < 0.7:
                logger.warning("Low confidence encoding guess: %s", guess)
            candidates.append(guess)
        candidates.extend(["cp949", "euc-kr"])
        return candidates
