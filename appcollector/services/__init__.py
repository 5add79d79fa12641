"""Collection, backfill and reporting services."""
