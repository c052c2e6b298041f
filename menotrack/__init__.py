"""MenoTrack account and session service."""
