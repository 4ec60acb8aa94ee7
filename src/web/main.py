import logging
import os
import threading
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from sessions import (
    NotSessionHostError,
    Session,
    SessionClosedError,
    SessionDatabase,
    SessionError,
    SessionNotFoundError,
    SessionStore,
)
from tabulation import NO_VOTES, InvalidInputError, InstantRunoffTabulator, tabulate

logger = logging.getLogger(__name__)

DATABASE_PATH_ENV = "RANKVOTE_DATABASE_PATH"

# Global database path and store, created on first request
db_path = None
_store: Optional[SessionStore] = None
_store_lock = threading.Lock()

SESSION_ERROR_STATUS = {
    SessionNotFoundError: 404,
    NotSessionHostError: 403,
    SessionClosedError: 409,
}


class TabulateRequest(BaseModel):
    candidates: List[str]
    ballots: List[List[str]] = []


class CreateSessionRequest(BaseModel):
    title: str


class AddOptionRequest(BaseModel):
    option: str


class BallotRequest(BaseModel):
    ranking: List[str]


def close_store():
    """Close the shared store's database, if one is open."""
    global _store
    with _store_lock:
        if _store is not None:
            _store.db.close()
            _store = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting RankVote")
    yield
    logger.info("Shutting down RankVote")
    close_store()


app = FastAPI(
    title="RankVote",
    description="Group decisions by ranked-choice (instant-runoff) voting",
    lifespan=lifespan,
)


def convert_numpy_types(obj: Any) -> Any:
    """Convert numpy types to native Python types for JSON serialization."""
    if isinstance(obj, np.integer):
        return int(obj)
    elif isinstance(obj, np.floating):
        return None if np.isnan(obj) else float(obj)
    elif isinstance(obj, np.bool_):
        return bool(obj)
    elif isinstance(obj, np.ndarray):
        return obj.tolist()
    elif isinstance(obj, dict):
        return {k: convert_numpy_types(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [convert_numpy_types(item) for item in obj]
    elif isinstance(obj, float) and obj != obj:  # NaN
        return None
    else:
        return obj


def dataframe_records(df: pd.DataFrame) -> List[Dict[str, Any]]:
    return convert_numpy_types(df.to_dict("records"))


def set_database_path(path: str):
    """Set the database path for the application."""
    global db_path, _store
    with _store_lock:
        db_path = path
        if _store is not None:
            _store.db.close()
            _store = None
    logger.info(f"Database path set to: {path}")


def get_store() -> SessionStore:
    """
    Get the session store, opening the database on first use.
    Falls back to the RANKVOTE_DATABASE_PATH environment variable.
    """
    global _store
    if _store is not None:
        return _store

    # Requests share one store so they share its lock
    with _store_lock:
        if _store is not None:
            return _store

        path = db_path or os.environ.get(DATABASE_PATH_ENV)
        if not path:
            raise HTTPException(status_code=500, detail="Database not configured")

        try:
            _store = SessionStore(SessionDatabase(path))
        except Exception as e:
            logger.error(f"Failed to open session database {path}: {e}")
            raise HTTPException(status_code=500, detail="Database unavailable")
        return _store


@app.exception_handler(SessionError)
async def session_error_handler(request: Request, exc: SessionError):
    status_code = SESSION_ERROR_STATUS.get(type(exc), 400)
    logger.info(f"{request.method} {request.url.path} rejected ({status_code}): {exc}")
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def session_payload(
    session: Session, participant_id: Optional[str] = None
) -> Dict[str, Any]:
    payload = {
        "code": session.code,
        "title": session.title,
        "host_id": session.host_id,
        "options": session.options,
        "participant_count": session.participant_count,
        "is_voting_closed": session.is_voting_closed,
        "winner": session.winner,
    }
    if participant_id is not None:
        payload["has_voted"] = session.has_voted(participant_id)
        payload["is_host"] = session.host_id == participant_id
    return payload


# API Routes
@app.get("/api/health")
async def health():
    return {"status": "ok"}


@app.post("/api/tabulate")
async def tabulate_ballots(request: TabulateRequest):
    """Tabulate ad-hoc candidates and ballots without storing anything."""
    try:
        result = tabulate(request.candidates, request.ballots)
    except InvalidInputError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "winner": None if result.winner is NO_VOTES else result.winner,
        "no_votes": result.winner is NO_VOTES,
        "total_ballots": result.total_ballots,
        "decided_by_fallback": result.decided_by_fallback,
        "rounds": [asdict(r) for r in result.rounds],
    }


@app.post("/api/sessions", status_code=201)
def create_session(
    request: CreateSessionRequest,
    x_participant_id: str = Header(...),
    store: SessionStore = Depends(get_store),
):
    session = store.create_session(request.title, x_participant_id)
    return session_payload(session, x_participant_id)


@app.get("/api/sessions/{code}")
def get_session(
    code: str,
    x_participant_id: Optional[str] = Header(None),
    store: SessionStore = Depends(get_store),
):
    return session_payload(store.get_session(code), x_participant_id)


@app.post("/api/sessions/{code}/options")
def add_option(
    code: str,
    request: AddOptionRequest,
    x_participant_id: str = Header(...),
    store: SessionStore = Depends(get_store),
):
    session = store.get_session(code)
    if session.host_id != x_participant_id:
        raise NotSessionHostError("Only the host can add options")
    return session_payload(store.add_option(code, request.option), x_participant_id)


@app.put("/api/sessions/{code}/ballot")
def submit_ballot(
    code: str,
    request: BallotRequest,
    x_participant_id: str = Header(...),
    store: SessionStore = Depends(get_store),
):
    session = store.submit_ballot(code, x_participant_id, request.ranking)
    return session_payload(session, x_participant_id)


@app.post("/api/sessions/{code}/close")
def close_voting(
    code: str,
    x_participant_id: str = Header(...),
    store: SessionStore = Depends(get_store),
):
    session = store.close_voting(code, x_participant_id)
    return session_payload(session, x_participant_id)


@app.get("/api/sessions/{code}/results")
def session_results(code: str, store: SessionStore = Depends(get_store)):
    """Winner plus round-by-round tabulation of a closed session."""
    session = store.get_session(code)
    if not session.is_voting_closed:
        raise HTTPException(status_code=409, detail="Voting is still open")

    tabulator = InstantRunoffTabulator(
        session.options, list(session.ballots.values())
    )
    try:
        tabulator.run_tabulation()
    except Exception as e:
        logger.error(f"Tabulation failed for session {session.code}: {e}")
        raise HTTPException(status_code=500, detail=f"Tabulation failed: {str(e)}")

    return {
        "code": session.code,
        "winner": session.winner,
        "participant_count": session.participant_count,
        "rounds": dataframe_records(tabulator.get_round_summary()),
        "final_results": dataframe_records(tabulator.get_final_results()),
    }
