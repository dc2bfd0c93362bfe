"""Pipelines for reel assembly."""
