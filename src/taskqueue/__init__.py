# src/taskqueue/__init__.py — v1
