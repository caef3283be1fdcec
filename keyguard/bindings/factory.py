"""Factory for binding store backends."""

from keyguard.bindings.models import utcnow
from keyguard.bindings.store import BindingStore, Clock, JSONBindingStore
from keyguard.config.settings import Settings


def create_binding_store(settings: Settings, clock: Clock = utcnow) -> BindingStore:
    """Build the configured binding store. The caller owns its lifetime."""
    backend = settings.binding_store_backend

    if backend == "json":
        return JSONBindingStore(settings.binding_store_path or None, clock=clock)

    if backend == "memory":
        return JSONBindingStore(None, clock=clock)

    if backend == "dynamodb":
        # Lazy import to avoid boto3 dependency when not needed
        from keyguard.bindings.dynamodb_store import DynamoDBBindingStore
        return DynamoDBBindingStore(
            table_name=settings.dynamodb_table_name,
            region=settings.aws_region,
            clock=clock,
        )

    raise ValueError(f"Unknown binding store backend: {backend}")
