"""tm - plugin-driven toolchain manager."""

__version__ = "0.4.0"
