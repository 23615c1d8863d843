"""School payments backend: bank payment validation and representative balances."""
