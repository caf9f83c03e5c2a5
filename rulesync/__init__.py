"""rulesync — keep a multi-tenant ruler in sync with declarative rule documents."""

__version__ = "0.1.0"
