"""Sweeps that move posts and comments through the ingestion lifecycle."""
