"""L0 Data — constants and lookup tables."""
