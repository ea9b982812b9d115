"""Pure domain types for the variance kernel (zero I/O)."""
