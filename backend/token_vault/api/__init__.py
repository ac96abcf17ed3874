"""HTTP surface for the token vault."""
