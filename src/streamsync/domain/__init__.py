"""Domain entities (SQLAlchemy models)."""
