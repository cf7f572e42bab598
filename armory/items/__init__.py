"""Items, carriers and the item registry."""
