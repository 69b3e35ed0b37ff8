"""Disc image inspection: protocol detection, mounting and title listing."""
