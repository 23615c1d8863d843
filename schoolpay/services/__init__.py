"""Payment domain services: duplicate detection, ledger writes, bank payment registration and balance queries."""
