"""HTTP API for planning dust vacuum runs."""
