"""Application layer: migrations, services and composition root."""
