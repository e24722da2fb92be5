"""Application services for WorkSafe."""
