"""rest api for blockcanvas."""
