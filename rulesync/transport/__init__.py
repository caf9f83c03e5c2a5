"""Transports to the remote ruler and Alertmanager — HTTP APIs and the mimirtool CLI."""
