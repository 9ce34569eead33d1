"""Build-system collaborators."""
