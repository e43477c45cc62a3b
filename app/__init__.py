"""
FastAPI Application Package

This package contains the FastAPI application and routing logic.
It exposes the market data service (prices, global stats, trending coins,
coin catalogue) over REST, with provider provenance on every response.
"""
