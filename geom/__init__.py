"""Flat-earth and polygon helpers for patrol footprints and detection boundaries."""
