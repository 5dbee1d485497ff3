import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from rentbook.api.routes import alerts, bookings, businesses, inventory, reminders, rentals
from rentbook.core.config import settings
from rentbook.core.database import engine
from rentbook.models.database import Base

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ready")
    yield


app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Inventory and booking ledger for rental businesses",
    version="1.0.0",
    lifespan=lifespan,
)

# Include routers
app.include_router(businesses.router, prefix="/api/v1/businesses", tags=["businesses"])
app.include_router(inventory.router, prefix="/api/v1/businesses/{business_id}/inventory", tags=["inventory"])
app.include_router(bookings.router, prefix="/api/v1/businesses/{business_id}/bookings", tags=["bookings"])
app.include_router(alerts.router, prefix="/api/v1/businesses/{business_id}/alerts", tags=["alerts"])
app.include_router(rentals.router, prefix="/api/v1/businesses/{business_id}/rentals", tags=["rentals"])
app.include_router(reminders.router, prefix="/api/v1/businesses/{business_id}/reminders", tags=["reminders"])

@app.get("/")
async def root():
    return {"message": "Rent Book Ledger API"}

@app.get("/health")
async def health_check():
    return {"status": "healthy"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
