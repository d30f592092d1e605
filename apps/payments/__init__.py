"""Payment settlement: intents, provider adapters and webhook reconciliation."""
