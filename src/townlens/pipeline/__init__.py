"""Report pipeline orchestration and narrative."""
