"""Presentation-side controllers for carrier sheets."""
