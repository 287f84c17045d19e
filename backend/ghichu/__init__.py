"""Ghichu note service backend."""
