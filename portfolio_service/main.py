"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from portfolio_service.config import settings
from portfolio_service.database import create_db_and_tables, engine
from portfolio_service.utils.logging import setup_logging
from portfolio_service.api import portfolio, quotes, risk, system, trades


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    setup_logging()
    create_db_and_tables()

    from portfolio_service.engine.registry import ControllerRegistry
    from portfolio_service.services.sources import sql_controller_factory
    app.state.registry = ControllerRegistry(sql_controller_factory(engine))

    from portfolio_service.engine.scheduler import start_scheduler, stop_scheduler
    start_scheduler(engine, settings.price_poll_seconds)

    yield

    stop_scheduler()
    await app.state.registry.close_all()


app = FastAPI(
    title="Portfolio Valuation Service",
    description="Live PnL, equity and risk metrics for personal and community trade ledgers",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount routers
app.include_router(trades.router)
app.include_router(quotes.router)
app.include_router(portfolio.router)
app.include_router(risk.router)
app.include_router(system.router)
