"""Business services for rule resolution, creation, update, activation and indexing."""
