"""Foundation Sprint: AI-assisted product strategy workflow service."""

__version__ = "0.1.0"
