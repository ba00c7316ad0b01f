"""Orbit crawl engine: render business sites in a headless browser and
turn them into a bounded, classified set of pages."""

__version__ = "0.3.0"
