"""Connections to backing infrastructure."""
