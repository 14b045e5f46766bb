# src/search/__init__.py — v1
