"""Estimatix - Infrastructure Layer."""
