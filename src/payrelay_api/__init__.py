"""REST API for the payment relay."""
