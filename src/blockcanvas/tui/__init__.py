"""terminal front end for blockcanvas."""
