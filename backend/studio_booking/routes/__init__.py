"""HTTP routes: versioned API under v1 plus the metrics endpoint."""
