"""
toolhub: ephemeral processing-and-delivery service for PDF, image, text
and utility tools.

Domain Structure:
- core/        - Shared infrastructure (config, logging, middleware, errors)
- pipeline/    - Intake, execution, packaging, download grants and cleanup
- operations/  - Tool handlers and their parameter schemas
- gateway/     - Starlette routes, health checks and app assembly
"""
