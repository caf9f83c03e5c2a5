"""Data models — rule documents, overrides, tenants, and sync results."""
