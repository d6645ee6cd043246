import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from deal_redemption.config import settings
from deal_redemption.database import Base, engine
from deal_redemption.errors import DealEngineError, TransientError
from deal_redemption.logging_config import configure_logging
from deal_redemption.models import deal, membership, redemption  # noqa: F401  (register tables)
from deal_redemption.routers import deals as deals_router
from deal_redemption.routers import redemptions as redemptions_router
from deal_redemption.services.messages import TRY_AGAIN

configure_logging()
logger = logging.getLogger(__name__)

# Create database tables
Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="Local Deals Redemption API",
    description="Deal lifecycle, redemption eligibility and the redemption ledger for the local deals marketplace",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(deals_router.router)
app.include_router(redemptions_router.router)


@app.get("/health")
def health():
    return {"status": "healthy"}


# Proper JSON error with correct status code
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"status_code": exc.status_code, "detail": exc.detail}},
    )


@app.exception_handler(DealEngineError)
async def deal_engine_error_handler(request: Request, exc: DealEngineError):
    if isinstance(exc, TransientError):
        logger.warning("Transient failure on %s: %s", request.url.path, exc.message)
        detail = {"message": TRY_AGAIN, "retryable": True}
    else:
        detail = exc.to_dict()
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"status_code": exc.status_code, "detail": detail}},
    )

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("deal_redemption.main:app", host="0.0.0.0", port=8000, reload=True)
