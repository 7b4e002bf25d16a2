"""Append-only JSONL audit journal."""

from journal.writer import JournalWriter

__all__ = ["JournalWriter"]
