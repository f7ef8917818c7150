"""Infrastructure: settings, database engine, unit of work, logging and events."""
