"""Tile rendering: HTML rasterization, image helpers and tile composition."""
