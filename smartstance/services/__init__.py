"""Session engine, speech listener supervision, enrichment and session registry."""
