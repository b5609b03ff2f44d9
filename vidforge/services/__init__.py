"""Services for the video enhancement pipeline."""
