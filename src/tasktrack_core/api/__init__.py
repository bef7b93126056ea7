"""HTTP API for TaskTrack Core."""
