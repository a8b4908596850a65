"""HTTP blueprints. Each package exposes its Blueprint object from routes.py."""
