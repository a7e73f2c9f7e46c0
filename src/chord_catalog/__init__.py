"""Chord chart catalog synchronized between a hosted search index and a local cache."""
