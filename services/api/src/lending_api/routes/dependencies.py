from fastapi import Request

from services.api.src.lending_api.services.facade import LendingService


def get_lending_service(request: Request) -> LendingService:
    """The facade built by the app lifespan."""
    return request.app.state.lending_service


def split_csv(value: str | None) -> list[str] | None:
    """'ethereum,solana' -> ['ethereum', 'solana']; None or blank -> None."""
    if not value:
        return None
    items = [item.strip() for item in value.split(",") if item.strip()]
    return items or None
