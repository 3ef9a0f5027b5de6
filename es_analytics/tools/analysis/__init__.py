"""
Pure analysis functions.

No data access: these functions turn raw search engine responses into
analytics models.
"""

from .date_histogram_analyzer import translate_date_histogram

__all__ = ["translate_date_histogram"]
