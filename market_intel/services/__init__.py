"""Business logic: cache façade, outcome classification, orchestration."""
