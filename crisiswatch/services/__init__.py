"""Cache, resilience, model gateway, orchestration and response planning."""
