"""Travel search backend over the Amadeus Self-Service APIs."""

__version__ = "0.1.0"
