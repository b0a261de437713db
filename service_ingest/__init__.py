"""Ingest service for the Submission Ingest Layer."""
