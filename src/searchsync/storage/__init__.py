"""Adapters for the source store and the search engine."""
