"""Trait types, renderers and reconcilers for OAM autoscaling traits, with an in-memory client."""

__version__ = "0.1.0"