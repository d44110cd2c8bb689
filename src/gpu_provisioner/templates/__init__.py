"""Static file templates shipped with the package."""
