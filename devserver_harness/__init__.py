"""
Dev server lifecycle verification harness.

Starts a dev server through a build-tool goal, waits for it over HTTP,
checks its content, stops it and confirms it went down, asserting on the
captured build log along the way.
"""

__version__ = "1.0.0"
