"""L5 Orchestration — the probe-then-install loop."""
