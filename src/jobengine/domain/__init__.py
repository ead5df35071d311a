"""Domain models for the job engine."""
