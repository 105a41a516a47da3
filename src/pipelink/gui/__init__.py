"""Qt integration for Pipelink."""
