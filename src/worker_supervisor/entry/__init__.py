"""Process entry points for the worker supervisor."""
