"""Opening-signal ingestion: scrape internship listings and reconcile them into a store."""

__version__ = "0.1.0"
