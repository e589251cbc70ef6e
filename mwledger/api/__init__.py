"""HTTP adapter (FastAPI) over SeriesLedger."""
