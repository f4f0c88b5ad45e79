"""FastAPI dependencies for request handling.

Service objects are created once in the application lifespan and stored on
app.state; these functions hand them to route handlers.
"""

from typing import Callable

from fastapi import Request

from styleswap.core.config import Settings
from styleswap.services.artifacts import ArtifactStore
from styleswap.services.credits import CreditLedger
from styleswap.services.job_runner import JobRunner
from styleswap.services.orchestrator import RenderOrchestrator
from styleswap.services.payments.coordinator import PaymentCoordinator
from styleswap.services.wiring import Services


def get_services(request: Request) -> Services:
    """Get the service graph built during application startup."""
    return request.app.state.services


def get_settings(request: Request) -> Settings:
    """Get the settings the application was started with."""
    return request.app.state.services.settings


def get_uow_factory(request: Request) -> Callable:
    """Get UnitOfWork factory from app state.

    Example:
        >>> @router.get("/endpoint")
        >>> async def endpoint(uow_factory=Depends(get_uow_factory)):
        ...     async with await uow_factory() as uow:
        ...         await uow.jobs.get_by_id(job_id)
    """
    return request.app.state.uow_factory


def get_orchestrator(request: Request) -> RenderOrchestrator:
    return request.app.state.services.orchestrator


def get_job_runner(request: Request) -> JobRunner:
    return request.app.state.services.job_runner


def get_payments(request: Request) -> PaymentCoordinator:
    return request.app.state.services.payments


def get_credit_ledger(request: Request) -> CreditLedger:
    return request.app.state.services.credits


def get_artifacts(request: Request) -> ArtifactStore:
    return request.app.state.services.artifacts
