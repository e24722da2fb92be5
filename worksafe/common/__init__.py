"""Shared utilities for WorkSafe processes."""
