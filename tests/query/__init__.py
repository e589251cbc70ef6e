"""Aggregation primitive tests."""
