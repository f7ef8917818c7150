"""Types, schemas and result values shared across layers."""
