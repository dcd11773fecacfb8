"""Chat relay: upstream SSE translation and conversation memory."""
