"""Lead generation CRM for care establishments."""
