"""AWS Lambda entry point.

Mangum translates API Gateway HTTP API (v2) events into ASGI. Lifespan
stays on so the binding store is created at cold start; pair it with
BINDING_STORE_BACKEND=dynamodb so bindings are shared across instances.
"""

from mangum import Mangum

from keyguard.main import app

handler = Mangum(app, lifespan="auto")
