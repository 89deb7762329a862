"""revdeps - reverse dependency finder for recipe based package registries."""

__version__ = "0.1.0"
