from chainpass_webhooks.middleware.trace import create_trace_middleware

__all__ = ["create_trace_middleware"]
