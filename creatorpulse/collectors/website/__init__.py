"""Web page normalization."""
