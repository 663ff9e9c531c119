"""Workers package: request-scoped orchestration of the statement parse pipeline."""
