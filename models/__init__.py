"""Model streaming clients."""
