"""Outbound fetching, proxy rotation and Reddit payload parsing."""
