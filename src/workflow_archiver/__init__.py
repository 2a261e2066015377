"""Workflow Archiver - moves finished workflow steps from the active table to the archive."""

__version__ = "2.0.0"

__all__ = [
    "BatchController",
    "CandidateFinder",
    "VersionResolver",
    "CriteriaBuilder",
    "IndexSuspender",
    "ArchiveTransactionRunner",
    "DatabaseManager",
]
