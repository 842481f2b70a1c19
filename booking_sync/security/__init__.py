"""Security helpers: rate limiting and permission checks."""
