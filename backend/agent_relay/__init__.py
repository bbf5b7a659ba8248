"""Chat relay between a browser UI and an upstream conversational agent API."""
