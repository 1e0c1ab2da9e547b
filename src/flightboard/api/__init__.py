"""FastAPI serving layer for the flight board."""
