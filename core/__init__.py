"""Core package: connection management, schema validation and the error taxonomy."""
