"""CopilotEdge: a caching, rate-limited gateway to Cloudflare Workers AI."""

__version__ = "0.3.0"
