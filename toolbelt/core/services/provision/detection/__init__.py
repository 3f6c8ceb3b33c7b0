"""L3 Detection — read-only probes of the host and its tools."""
