"""Estimatix - Domain layer."""
