"""
Order API main application.
Entry point for the FastAPI server.
"""

from fastapi import FastAPI
from slowapi.errors import RateLimitExceeded

from shared.config.settings import settings
from shared.infrastructure.correlation import CorrelationIdMiddleware
from shared.security.rate_limit import limiter, rate_limit_exceeded_handler

from order_api.core.cors import configure_cors
from order_api.core.errors import register_exception_handlers
from order_api.core.lifespan import lifespan
from order_api.routers.health import router as health_router
from order_api.routers.orders import router as orders_router


app = FastAPI(
    title="MenuPro Order API",
    description="Multi-tenant restaurant order processing",
    version="0.1.0",
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

register_exception_handlers(app)

app.add_middleware(CorrelationIdMiddleware)
configure_cors(app)


# =============================================================================
# Include Routers
# =============================================================================

app.include_router(health_router)
app.include_router(orders_router)


# =============================================================================
# Development entry point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "order_api.main:app",
        host="0.0.0.0",
        port=settings.api_port,
        reload=True,
    )
