"""
leadflow

Domain event bus and durable background job pipeline for the lead dashboard.
"""

__version__ = "0.1.0"
