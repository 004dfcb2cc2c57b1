# storefront/main.py
from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware

from storefront.api.error_handlers import register_exception_handlers
from storefront.api.routers import carts, orders
from storefront.core.config import settings
from storefront.core.logging import setup_logging
from storefront.core.metrics import export_metrics
from storefront.middleware import ObservabilityMiddleware

# --- Models registration (needed for Alembic and create_all) ---
import storefront.models.user     # noqa: F401
import storefront.models.product  # noqa: F401
import storefront.models.cart     # noqa: F401
import storefront.models.order    # noqa: F401

TAGS_METADATA = [
    {"name": "carts", "description": "Shopping carts, their line items and checkout."},
    {"name": "orders", "description": "Orders created by checkout."},
]

setup_logging()

app = FastAPI(
    title=settings.PROJECT_NAME,
    version="0.1.0",
    description=(
        "Cart and order backend.\n\n"
        "- **Carts**: per-user carts with price snapshots taken when items are added.\n"
        "- **Checkout**: turns a cart into an order and charges the payment instrument.\n"
        "- **Orders**: PENDING, COMPLETE or FAILED, never moving back once settled."
    ),
    openapi_tags=TAGS_METADATA,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

# --- Middlewares ---
app.add_middleware(ObservabilityMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # tighten in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# --- Routers ---
app.include_router(carts.router, prefix=settings.API_V1_STR)
app.include_router(orders.router, prefix=settings.API_V1_STR)


@app.get("/", include_in_schema=False)
def root():
    return {"status": "ok", "docs_url": "/docs", "redoc_url": "/redoc"}


@app.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    body, content_type = export_metrics()
    return Response(content=body, media_type=content_type)
