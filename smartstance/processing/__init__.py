"""Per-channel analyzers, alert dispatch, metrics aggregation and reporting."""
