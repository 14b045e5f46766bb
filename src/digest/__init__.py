# src/digest/__init__.py — v1
