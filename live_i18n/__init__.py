"""Live localization for model-generated UI components."""

__version__ = "0.3.0"
