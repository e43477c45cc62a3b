"""
FastAPI Application - Resilient Market Data API

Provides REST access to cryptocurrency market data fetched from several
providers with automatic fallback and short-lived caching.

Supported Providers (priority order by default):
    - CoinGecko
    - CoinMarketCap
    - CryptoCompare

Every market endpoint returns the fetch envelope:
    {"success": true, "data": ..., "provider": "coingecko", "error": null, "retry_after": null}

When every provider fails, `provider` is "synthetic" and `error` carries the
last provider error; the request itself still succeeds.

Usage:
    uvicorn app.main:app --reload --host 0.0.0.0 --port 8000

Docs:
    - Swagger: http://localhost:8000/docs
    - ReDoc: http://localhost:8000/redoc
"""

from contextlib import asynccontextmanager
from typing import Dict

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.config import settings, validate_configuration
from core.logging import logger
from core.schemas import FetchResult
from services.market_data import MarketDataService


# ============================================
# Lifespan Management
# ============================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown."""
    logger.info("=== Application Starting ===")
    try:
        validate_configuration()
        await service.initialize()
        logger.info("=== Started Successfully ===")
    except Exception as e:
        logger.error(f"Startup failed: {e}")
        raise

    yield

    logger.info("=== Shutting Down ===")
    try:
        await service.shutdown()
        logger.info("=== Shutdown Complete ===")
    except Exception as e:
        logger.error(f"Shutdown error: {e}")


# ============================================
# FastAPI Application
# ============================================

app = FastAPI(
    title="Market Data API",
    description=(
        "Cryptocurrency market data with multi-provider fallback.\n\n"
        "**Providers:** CoinGecko, CoinMarketCap, CryptoCompare\n\n"
        "## REST Endpoints\n"
        "- `GET /market/overview` - Prices, global stats and trending in one call\n"
        "- `GET /market/prices` - Ranked market listing (`per_page`, `page`, `vs_currency`)\n"
        "- `GET /market/global` - Global market statistics\n"
        "- `GET /market/trending` - Trending coins\n"
        "- `GET /market/coins` - Full coin catalogue\n"
        "- `GET /market/meme` - Curated meme coin listing\n"
        "- `GET /market/defi` - Curated DeFi coin listing\n"
        "- `GET /market/coin/{coin_id}` - Coin profile and market snapshot\n"
        "- `GET /market/chart/{coin_id}/{days}` - Price history (1-365 days)\n"
        "- `GET /market/coin-id/{symbol}` - Chain symbol to coin id\n"
        "- `GET /market/api-health` - Provider availability and cache stats\n"
        "- `GET /health` - Health check\n\n"
        "Add `?refresh=true` to any market endpoint to bypass the cache."
    ),
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"]
)

service = MarketDataService()  # Global market data service


# ============================================
# System Endpoints
# ============================================

@app.get("/", tags=["System"])
async def root():
    """API information and configured providers."""
    return {
        "name": "Market Data API",
        "version": "1.0.0",
        "status": "operational",
        "docs": "/docs",
        "providers": service.orchestrator.registry.list_providers()
    }


@app.get("/health", tags=["System"])
async def health_check():
    """Health check - reports which providers are currently in rotation."""
    report = await service.check_api_health()
    providers = report["providers"]
    available = [name for name, info in providers.items() if info["available"]]
    return {
        "status": "healthy" if len(available) == len(providers) else "degraded",
        "available_providers": available
    }


# ============================================
# Market Data Endpoints
# ============================================

@app.get("/market/overview", tags=["Market Data"])
async def get_market_overview(refresh: bool = Query(default=False, description="Bypass the cache")):
    """
    Prices, global stats and trending coins fetched concurrently.

    Example:
        GET /market/overview
    """
    try:
        overview: Dict[str, FetchResult] = await service.get_market_overview(force_refresh=refresh)
        return overview
    except Exception as e:
        logger.error(f"Market overview error: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to fetch market overview: {str(e)}")


@app.get("/market/prices", response_model=FetchResult, tags=["Market Data"])
async def get_prices(
    per_page: int = Query(default=100, ge=1, le=250, description="Coins per page"),
    page: int = Query(default=1, ge=1, description="Page number"),
    vs_currency: str = Query(default="usd", description="Quote currency"),
    refresh: bool = Query(default=False, description="Bypass the cache")
):
    """
    Ranked market listing with 7-day sparkline.

    Examples:
        GET /market/prices?per_page=50
        GET /market/prices?page=2&vs_currency=eur
    """
    try:
        return await service.get_coin_prices(
            per_page=per_page, page=page, vs_currency=vs_currency, force_refresh=refresh
        )
    except Exception as e:
        logger.error(f"Prices error: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to fetch prices: {str(e)}")


@app.get("/market/global", response_model=FetchResult, tags=["Market Data"])
async def get_global(refresh: bool = Query(default=False, description="Bypass the cache")):
    """Aggregate market statistics (total cap, volume, dominance)."""
    try:
        return await service.get_global_stats(force_refresh=refresh)
    except Exception as e:
        logger.error(f"Global stats error: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to fetch global stats: {str(e)}")


@app.get("/market/trending", response_model=FetchResult, tags=["Market Data"])
async def get_trending(refresh: bool = Query(default=False, description="Bypass the cache")):
    """Trending coins."""
    try:
        return await service.get_trending_coins(force_refresh=refresh)
    except Exception as e:
        logger.error(f"Trending error: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to fetch trending coins: {str(e)}")


@app.get("/market/coins", response_model=FetchResult, tags=["Market Data"])
async def get_coins(refresh: bool = Query(default=False, description="Bypass the cache")):
    """Full coin catalogue (id, symbol, name)."""
    try:
        return await service.get_all_coins(force_refresh=refresh)
    except Exception as e:
        logger.error(f"Coin list error: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to fetch coin list: {str(e)}")


@app.get("/market/meme", response_model=FetchResult, tags=["Market Data"])
async def get_meme_coins(
    vs_currency: str = Query(default="usd", description="Quote currency"),
    refresh: bool = Query(default=False, description="Bypass the cache")
):
    """Curated list of popular meme coins."""
    try:
        return await service.get_top_meme_coins(vs_currency=vs_currency, force_refresh=refresh)
    except Exception as e:
        logger.error(f"Meme coins error: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to fetch meme coins: {str(e)}")


@app.get("/market/defi", response_model=FetchResult, tags=["Market Data"])
async def get_defi_coins(
    vs_currency: str = Query(default="usd", description="Quote currency"),
    refresh: bool = Query(default=False, description="Bypass the cache")
):
    """Curated list of popular DeFi coins."""
    try:
        return await service.get_top_defi_coins(vs_currency=vs_currency, force_refresh=refresh)
    except Exception as e:
        logger.error(f"DeFi coins error: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to fetch DeFi coins: {str(e)}")


@app.get("/market/coin/{coin_id}", response_model=FetchResult, tags=["Market Data"])
async def get_coin_details(
    coin_id: str,
    vs_currency: str = Query(default="usd", description="Quote currency"),
    refresh: bool = Query(default=False, description="Bypass the cache")
):
    """
    Profile and market snapshot for one coin.

    Example:
        GET /market/coin/bitcoin?vs_currency=eur
    """
    try:
        return await service.get_coin_details(coin_id, vs_currency=vs_currency, force_refresh=refresh)
    except Exception as e:
        logger.error(f"Coin details error for {coin_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to fetch coin details: {str(e)}")


@app.get("/market/chart/{coin_id}/{days}", response_model=FetchResult, tags=["Market Data"])
async def get_chart(
    coin_id: str,
    days: int,
    vs_currency: str = Query(default="usd", description="Quote currency"),
    refresh: bool = Query(default=False, description="Bypass the cache")
):
    """
    Price, market cap and volume history.

    Examples:
        GET /market/chart/bitcoin/7
        GET /market/chart/ethereum/365?vs_currency=eur

    Raises:
        400: days outside 1-365
    """
    try:
        return await service.get_historical_data(
            coin_id, days=days, vs_currency=vs_currency, force_refresh=refresh
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Chart error for {coin_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to fetch chart data: {str(e)}")


@app.get("/market/coin-id/{symbol}", tags=["Market Data"])
async def get_coin_id(symbol: str):
    """
    Map a chain symbol to its coin id.

    Example:
        GET /market/coin-id/TON  ->  {"symbol": "TON", "coin_id": "the-open-network"}
    """
    coin_id = service.get_coin_id_by_symbol(symbol)
    if coin_id is None:
        raise HTTPException(status_code=404, detail=f"Unknown symbol '{symbol}'")
    return {"symbol": symbol.upper(), "coin_id": coin_id}


@app.get("/market/api-health", tags=["System"])
async def get_api_health():
    """Per-provider availability, backoff and rate-limit state plus cache stats."""
    return await service.check_api_health()


# ============================================
# Error Handlers
# ============================================

@app.exception_handler(404)
async def not_found_handler(request, exc):
    """Handle 404 errors."""
    detail = getattr(exc, "detail", None) or "Not found"
    return JSONResponse(status_code=404, content={"detail": detail, "path": str(request.url)})


@app.exception_handler(500)
async def internal_error_handler(request, exc):
    """Handle 500 errors."""
    logger.error(f"Internal error: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})
