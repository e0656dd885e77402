from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
def health(request: Request):
    return {"request_id": request.state.request_id, "data": {"status": "ok"}, "error": None}
