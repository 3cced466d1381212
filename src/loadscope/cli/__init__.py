"""loadscope CLI."""
