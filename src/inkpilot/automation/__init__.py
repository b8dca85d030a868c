"""Risk-gated automatic execution of insight action items."""
