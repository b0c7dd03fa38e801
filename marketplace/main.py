import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from marketplace.amortization import InvalidInput
from marketplace.config import get_settings
from marketplace.init_db import init_db
from marketplace.routers import lenders, loans, offers, terms, users

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Micro-lending Marketplace API")

# Ensure DB is ready even in test contexts without startup events
init_db()

app.include_router(users.router, prefix="/users", tags=["users"])
app.include_router(lenders.router, prefix="/lenders", tags=["lenders"])
app.include_router(offers.router, prefix="/offers", tags=["offers"])
app.include_router(terms.router, prefix="/terms", tags=["terms"])
app.include_router(loans.router, prefix="/loans", tags=["loans"])


@app.exception_handler(InvalidInput)
async def invalid_input_handler(request: Request, exc: InvalidInput):
    logger.warning("Rejected %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": exc.message, "constraint": exc.constraint},
    )


@app.get("/health")
def health_check():
    return {"status": "ok"}


@app.on_event("startup")
def on_startup():
    init_db()
