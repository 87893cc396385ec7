"""Lead Funnel - lead capture and affiliate attribution."""

__version__ = "1.0.0"
