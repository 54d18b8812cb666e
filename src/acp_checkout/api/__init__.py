"""HTTP surface for the checkout service."""
