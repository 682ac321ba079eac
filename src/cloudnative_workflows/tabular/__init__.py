"""Lazy dataset handles and pushdown queries over remote Parquet."""
