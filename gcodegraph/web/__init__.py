"""HTTP surface for the editor session."""
