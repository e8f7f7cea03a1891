"""Devin API integration."""
