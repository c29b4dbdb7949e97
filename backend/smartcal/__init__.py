"""SmartCal scheduling backend."""

__version__ = "0.4.0"
