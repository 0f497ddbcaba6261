"""taskflow: multi-user task manager with recurring tasks and reminder sweeps."""

__version__ = "0.1.0"
