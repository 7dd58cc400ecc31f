"""Configuration storage and snapshot ingestion."""
