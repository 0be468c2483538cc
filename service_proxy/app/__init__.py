"""
Content cache proxy service package.

The proxy fronts a single content delivery API, enforcing:
- Request allowlisting: only `/entries` with an allowed `content_type`
- Response caching: in-memory, age-bounded LRU keyed by path + query
- Cache invalidation: any DELETE request clears every entry

Structure:
- app.main: FastAPI app and service wiring.
- app.dispatcher: Per-request pipeline (classify, answer or forward).
- app.routing: Request classification and query decoding.
- app.caching: Response cache store.
- app.adapters: HTTP gateway to the upstream API.
- app.models: Core value types.
"""
