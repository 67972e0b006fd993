"""Relational persistence for stocks, posts, comments and request logs."""
