"""VidTube - video sharing platform backend."""
