"""Database-backed job queue with leases, retries and a dead-letter table."""
