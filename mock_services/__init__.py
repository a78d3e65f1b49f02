"""In-memory stand-ins for the store API and the shipping calculator."""
