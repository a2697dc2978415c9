"""HTTP surface for the lead pipeline."""
