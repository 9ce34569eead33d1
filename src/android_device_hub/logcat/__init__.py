"""Log stream parsing, filtering and buffering."""
