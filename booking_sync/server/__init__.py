"""HTTP application wiring."""
