"""Timers driving ingestion, aggregation and reports."""
