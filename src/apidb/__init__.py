"""apidb: local, queryable index of OpenAPI operations and schemas."""

__version__ = "0.1.0"
