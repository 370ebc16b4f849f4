"""Request observability: structlog JSON logs (stdout + Loki), Prometheus metrics,
and the ASGI middleware that ties them to each request.
"""
