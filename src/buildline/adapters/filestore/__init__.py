"""Content-addressed file store backends."""
