"""Estimatix - estimating, pricing and documents for construction contractors."""

__version__ = "0.1.0"
