"""Adapters for the ledger, the calendar and the key/value store."""
