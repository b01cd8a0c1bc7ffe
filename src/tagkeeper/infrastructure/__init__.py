"""Infrastructure layer: request coordination, persistence, integrations, observability."""
