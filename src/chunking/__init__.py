# src/chunking/__init__.py — v1
