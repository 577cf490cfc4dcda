"""
Resumable streaming completion gateway.

This package contains:
- settings: configuration loaded from env / .env
- logging_config: shared logging setup
- deps: FastAPI dependencies (HTTP client, stream store, relay wiring)
- provider: upstream adapters (raw HTTP event-stream and official SDKs)
- routing: candidate list, upstream error classification, fallback chain
- storage: partial-result store and its janitor
- streaming: client channel, leases, resumption and the stream relay
- routes / chat_routes: FastAPI app factory and HTTP endpoints
"""
