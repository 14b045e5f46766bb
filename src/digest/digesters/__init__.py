# src/digest/digesters/__init__.py — v1
