from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from tripchat.core.config import get_settings
from tripchat.core.pipeline import DialoguePipeline
from tripchat.core.types import ChatRequest, ChatResponse, HistoryResponse, SessionInfo, StoreStats

pipeline = DialoguePipeline()


@asynccontextmanager
async def lifespan(_app: FastAPI):
    store = pipeline.store
    if hasattr(store, "start_sweeper"):
        store.start_sweeper()
    yield
    if hasattr(store, "stop_sweeper"):
        store.stop_sweeper()


app = FastAPI(title="TripChat API", default_response_class=ORJSONResponse, lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.post("/chat", response_model=ChatResponse)
def chat(req: ChatRequest) -> ChatResponse:
    return pipeline.process(req.message, session_id=req.session_id, profile=req.profile)


@app.get("/chat/{session_id}/history", response_model=HistoryResponse)
def history(session_id: str) -> HistoryResponse:
    turns = pipeline.history(session_id)
    if not turns:
        raise HTTPException(status_code=404, detail="Session not found or no history")
    return HistoryResponse(session_id=session_id, history=turns, length=len(turns))


@app.get("/chat/{session_id}", response_model=SessionInfo)
def session_info(session_id: str) -> SessionInfo:
    info = pipeline.session_info(session_id)
    if info is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return info


@app.delete("/chat/{session_id}")
def clear(session_id: str) -> dict:
    pipeline.clear_session(session_id)
    return {"success": True, "message": "Conversation cleared"}


@app.get("/stats", response_model=StoreStats)
def stats() -> StoreStats:
    return pipeline.stats()


# Local dev convenience: uvicorn entry point
if __name__ == "__main__":
    import uvicorn

    uvicorn.run("tripchat.main:app", host="0.0.0.0", port=get_settings().port, reload=True)
