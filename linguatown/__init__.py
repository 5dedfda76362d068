"""Lingua Town: conversation practice with AI characters around a small town."""

__version__ = '1.0.0'
