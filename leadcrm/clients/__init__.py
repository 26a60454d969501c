"""External API clients: Hunter, ZeroBounce, Brevo, Serper."""
