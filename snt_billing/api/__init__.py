"""HTTP surface of the billing core."""
