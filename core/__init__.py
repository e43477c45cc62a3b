"""
Core Package

Contains the provider-agnostic core logic including:
- ProviderInterface: Abstract base class defining the contract for all providers
- ProviderRegistry: Ordered, immutable registry of provider connectors
- AvailabilityTracker: Per-provider backoff, rate-limit and request-budget state
- Schemas: Pydantic models for the canonical market data format
- Outcomes: Tagged results of a single provider attempt

This layer ensures all providers follow the same interface, making the system modular and scalable.
"""
