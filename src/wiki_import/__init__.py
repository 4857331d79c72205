"""Import Wikipedia articles and their media into a worldbuilding workspace."""
