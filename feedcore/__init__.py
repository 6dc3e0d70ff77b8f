"""Feed ranking and caching core: sorted-set feeds, bloom filters, activity-adaptive TTLs."""
