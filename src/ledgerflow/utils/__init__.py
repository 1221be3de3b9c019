"""Utility functions for ledgerflow."""

from ledgerflow.utils.date_parser import parse_date
from ledgerflow.utils.amount_parser import parse_amount
from ledgerflow.utils.batching import chunked, batched_lookup

__all__ = ["parse_date", "parse_amount", "chunked", "batched_lookup"]
