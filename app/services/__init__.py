"""Service layer: catalog fetching, diffing, importing and scheduling."""
