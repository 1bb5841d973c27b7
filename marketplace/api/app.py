"""
FastAPI application exposing the quotation marketplace.

Every MarketplaceError becomes ``{"error": kind, "message": ...}`` with
the error's status code, so clients can tell "someone already acted on
this order" (409) from "fix your input" (400).
"""
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from marketplace.api.routers import messages, orders, quotations
from marketplace.config import get_settings
from marketplace.engine.marketplace import Marketplace
from marketplace.engine.presentation import presentation_table
from marketplace.events.errors import MarketplaceError

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


def create_app(market: Optional[Marketplace] = None) -> FastAPI:
    """
    Build the API around a marketplace instance.

    Args:
        market: Marketplace to serve (a fresh in-memory one by default)
    """
    settings = get_settings()
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(title="Grocery Quotation Marketplace", version=VERSION)
    app.state.marketplace = market or Marketplace()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(MarketplaceError)
    async def marketplace_error_handler(request: Request, exc: MarketplaceError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        )
        return JSONResponse(
            status_code=400,
            content={"error": "validation_error", "message": problems},
        )

    @app.get("/health")
    def health_check():
        return {"status": "ok", "version": VERSION}

    @app.get("/statuses")
    def statuses():
        """Canonical labels and colours for every status."""
        return presentation_table()

    app.include_router(orders.router)
    app.include_router(quotations.router)
    app.include_router(messages.router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("marketplace.api.app:app", host="0.0.0.0", port=8000, log_level="info")
