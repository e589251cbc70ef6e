"""Temporal layer tests: calendar, clock, log, index, fold, snapshots."""
