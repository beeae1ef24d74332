"""CLI module for duochat."""
