"""Glowstats: cached aggregation API for Glow solar farm and token statistics."""
