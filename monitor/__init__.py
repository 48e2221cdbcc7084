"""Metric aggregation, health probes and the background scheduler."""
