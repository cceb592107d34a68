"""Core configuration, logging, errors and service wiring."""
