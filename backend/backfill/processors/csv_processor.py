"""
CSV file processor for analytics export imports.
"""
from typing import Any, BinaryIO, Dict, List, Optional, Sequence

import pandas as pd
from pandas.io.parsers import TextFileReader

from backfill.core.config import settings
from backfill.core.logging import get_logger
from backfill.services.imports.errors import InvalidImportFileError

logger = get_logger(__name__)


class CSVProcessor:
    """Processor for CSV export files."""

    ALLOWED_CONTENT_TYPES = frozenset([
        "text/csv",
        "application/csv",
        "text/x-csv",
        "application/x-csv",
        "text/comma-separated-values",
        "text/plain",
        "application/vnd.ms-excel",
        "application/octet-stream",
    ])

    def __init__(self, block_size: Optional[int] = None, max_file_size: Optional[int] = None):
        self.block_size = block_size or settings.IMPORT_CSV_BLOCK_SIZE
        self.max_file_size = max_file_size or settings.IMPORT_MAX_FILE_SIZE

    def validate_upload(self, filename: Optional[str], content_type: Optional[str], file_size: int) -> Dict[str, Any]:
        """
        Validate an uploaded export before it is stored.

        Args:
            filename: Original filename
            content_type: MIME type reported by the client
            file_size: Size in bytes

        Returns:
            Validation result with status and message
        """
        if not filename or not filename.lower().endswith(".csv"):
            return {"valid": False, "message": "File must have .csv extension"}

        media_type = (content_type or "").split(";")[0].strip().lower()
        if media_type and media_type not in self.ALLOWED_CONTENT_TYPES:
            return {"valid": False, "message": f"Unsupported content type: {media_type}"}

        if file_size == 0:
            return {"valid": False, "message": "File is empty"}

        if file_size > self.max_file_size:
            return {
                "valid": False,
                "message": (
                    f"File size ({file_size / 1024 / 1024:.2f} MB) exceeds maximum allowed size "
                    f"({self.max_file_size / 1024 / 1024:.0f} MB)"
                ),
            }

        return {"valid": True, "message": "File is valid", "file_size": file_size}

    def open_reader(self, stream: BinaryIO, headers: Sequence[str]) -> Optional[TextFileReader]:
        """
        Start reading an export in blocks of ``block_size`` rows.

        Only the expected columns are kept and every value is read as a
        string, so rows reach the mappers exactly as exported. Blank lines
        and lines with too many fields are skipped.

        Returns:
            Block reader, or None when the file has no content at all

        Raises:
            InvalidImportFileError: If expected columns are missing or the file cannot be parsed
        """
        try:
            return pd.read_csv(
                stream,
                usecols=list(headers),
                dtype=str,
                keep_default_na=False,
                index_col=False,
                skip_blank_lines=True,
                on_bad_lines="skip",
                encoding="utf-8",
                encoding_errors="replace",
                chunksize=self.block_size,
            )
        except pd.errors.EmptyDataError:
            logger.info("Import file is empty")
            return None
        except pd.errors.ParserError as e:
            raise InvalidImportFileError(f"Could not parse CSV file: {e}") from e
        except ValueError as e:
            # pandas reports usecols that are not in the header as ValueError
            raise InvalidImportFileError(f"File is missing expected columns: {e}") from e

    def read_block(self, reader: TextFileReader) -> Optional[List[Dict[str, Any]]]:
        """
        Read the next block of rows as column -> value dicts.

        Values are strings; fields missing from short rows are NaN.

        Returns:
            Rows of the block, or None once the file is exhausted
        """
        try:
            frame = next(reader)
        except StopIteration:
            return None
        except pd.errors.ParserError as e:
            raise InvalidImportFileError(f"Could not parse CSV file: {e}") from e
        return frame.to_dict(orient="records")

    @staticmethod
    def close_reader(reader: Optional[TextFileReader]) -> None:
        if reader is not None:
            reader.close()
