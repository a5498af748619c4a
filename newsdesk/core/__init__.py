"""Pipeline stages, storage and shared helpers."""
