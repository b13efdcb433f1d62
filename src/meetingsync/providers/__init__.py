"""Video-conferencing provider accounts and the Zoom API client."""
