"""Sample API routes built on webfram.bind."""
