"""Core configuration, persistence, logging and error handling."""
