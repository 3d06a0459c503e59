"""blockcanvas: an infinite canvas of composable mini-programs."""

__version__ = "0.1.0"
