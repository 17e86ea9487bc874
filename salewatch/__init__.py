"""Sales alert bot: polls group sale feeds, stores them once, alerts and summarises."""

__version__ = "0.1.0"
