"""Corpus and quota storage."""
