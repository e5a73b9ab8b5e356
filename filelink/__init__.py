"""Seafile FileLink: upload large mail attachments to Seafile and share them by link."""

__version__ = "0.1.0"
