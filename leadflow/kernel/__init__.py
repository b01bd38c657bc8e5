"""Kernel utilities shared across the event and job layers.

Rules:
- Kernel code must not import from `leadflow.events` or `leadflow.jobs`.
- Kernel utilities should stay small and stable; avoid business logic here.
"""
