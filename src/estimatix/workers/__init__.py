"""Estimatix - background workers (Redis/RQ)."""
