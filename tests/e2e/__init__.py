"""End-to-end tests running the sync engine against fakes."""
