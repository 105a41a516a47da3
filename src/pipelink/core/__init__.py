"""Pipelink core: configuration."""
