"""Credential resolution for the remote ruler endpoint."""
