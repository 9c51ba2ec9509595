"""
Services Layer
Read-side helpers used by the routes: catalog lookups and document search.

Services should:
- Not modify data; writes go through the business layer
- Raise the same typed errors as the business layer so routes handle both alike
"""
