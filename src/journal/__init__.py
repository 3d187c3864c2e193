"""
Append-only JSON lines journal for fills, trades, rejections and evaluations.
"""

from journal.writer import JournalWriter

__all__ = ["JournalWriter"]
