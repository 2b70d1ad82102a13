"""Error hierarchy and application wiring."""
