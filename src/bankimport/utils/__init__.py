"""Utility functions for bankimport."""

from bankimport.utils.date_parser import parse_date
from bankimport.utils.amount_parser import parse_amount, parse_amount_to_cents

__all__ = ["parse_date", "parse_amount", "parse_amount_to_cents"]
