"""Turn alerts for Terraforming Mars games."""

__version__ = "0.1.0"
