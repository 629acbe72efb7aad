"""Call records and their storage."""
