# src/vendors/__init__.py — v1
