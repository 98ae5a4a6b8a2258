"""Batch GitHub repository metrics for student rosters."""
