from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request):
    services = request.app.state.services
    config = request.app.state.settings
    return {
        "status": "ok",
        "app": config.app_name,
        "env": config.app_env,
        "workers_running": services.pool.running,
        "queued": services.pool.pending,
    }
