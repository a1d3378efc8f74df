"""Domain services: ad serving, caching, scoring, sync queue, webhooks."""
