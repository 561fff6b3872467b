"""Background jobs for daily settlement."""
