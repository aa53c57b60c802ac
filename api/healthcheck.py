from fastapi import APIRouter
from scheduler.backtracking import process_memory_mb

router = APIRouter(prefix="/health", tags=["Health Check"])


@router.get("/check", summary="Health Check")
def healthcheck():
    return {"status": "ok", "memoryMb": round(process_memory_mb(), 1)}
