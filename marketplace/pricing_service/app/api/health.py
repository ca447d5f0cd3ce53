from fastapi import APIRouter, Request, status

router = APIRouter(prefix="/health", tags=["health"])


@router.get("", status_code=status.HTTP_200_OK)
async def healthcheck(request: Request) -> dict[str, str]:
    """Return a simple health status payload."""

    cache = getattr(request.app.state, "price_cache", None)
    return {"status": "ok", "priceCache": "enabled" if cache is not None else "disabled"}
