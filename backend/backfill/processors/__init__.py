# Processors package
from backfill.processors.csv_processor import CSVProcessor

__all__ = [
    "CSVProcessor",
]
