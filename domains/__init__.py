"""Domain modules for the RemindAI dispatch service."""
