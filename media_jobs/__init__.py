"""Supervise ffmpeg and yt-dlp jobs with live progress and clean cancellation."""
