"""Actors and the derived effects materialized on them."""
