"""Shellcore test suite."""
