"""Player profile tracker: offline-first sync of a claimed game profile."""
