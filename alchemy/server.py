"""
Alchemy FastAPI Server
Exposes per-player inventories, recipes and workspaces via REST API.
"""

from functools import lru_cache

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from typing import Optional, List, Dict, Any
from pathlib import Path
import logging
import os
import uvicorn

from alchemy.api import Alchemy
from alchemy.config import Config
from alchemy.generator import ConceptGenerator, resolve_generator
from alchemy.workspace import REJECTION_NOTICE, DropResult, DropStatus

app = FastAPI(
    title="Alchemy Server",
    description="Combine two concepts to discover a new one",
    version="1.0.0"
)

# CORS for the browser canvas
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_methods=["*"],
    allow_headers=["*"],
)

# Live sandboxes per player
alchemy_sessions: Dict[str, Alchemy] = {}


# ============================================================================
# Request/Response Models
# ============================================================================

class AddTokenRequest(BaseModel):
    name: str
    viewport_width: Optional[int] = None


class DropRequest(BaseModel):
    x: float
    y: float


class CombineRequest(BaseModel):
    first: str
    second: str


class ResetRequest(BaseModel):
    confirm: bool = False


class DropResponse(BaseModel):
    status: str
    token: Optional[Dict[str, Any]] = None
    restored: List[Dict[str, Any]] = []
    discovered: bool = False
    notice: Optional[str] = None


# ============================================================================
# Helper Functions
# ============================================================================

@lru_cache(maxsize=1)
def get_generator() -> ConceptGenerator:
    """Generator used for sessions created by this process."""
    return resolve_generator()


def get_or_create_session(player: str, generator: ConceptGenerator) -> Alchemy:
    """Get existing sandbox or load/create one from the player's save file."""
    if player not in alchemy_sessions:
        save_path = Path(Config.player_save_path(player))
        if save_path.exists():
            print(f"[Server] Loading saved discoveries for player '{player}' from {save_path.name}")
        else:
            print(f"[Server] Creating new sandbox for player '{player}'")
        session = Alchemy.load(str(save_path), generator=generator)
        session.player = player
        alchemy_sessions[player] = session

    return alchemy_sessions[player]


def _require_concept(session: Alchemy, name: str):
    concept = session.find_concept(name)
    if concept is None:
        raise HTTPException(status_code=404, detail=f"Concept '{name}' not discovered yet")
    return concept


def _drop_response(result: DropResult) -> DropResponse:
    return DropResponse(
        status=result.status.value,
        token=result.token.to_dict() if result.token else None,
        restored=[t.to_dict() for t in result.restored],
        discovered=result.discovered,
        notice=REJECTION_NOTICE if result.status is DropStatus.REJECTED else None,
    )


# ============================================================================
# API Endpoints
# ============================================================================

@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "status": "running",
        "service": "Alchemy Server",
        "version": "1.0.0",
        "active_players": list(alchemy_sessions.keys())
    }


@app.get("/players")
async def list_players():
    """List all active players."""
    return {
        "players": list(alchemy_sessions.keys()),
        "count": len(alchemy_sessions)
    }


@app.get("/players/{player}/inventory")
async def get_inventory(player: str, search: str = "", generator: ConceptGenerator = Depends(get_generator)):
    """Discovered concepts, optionally filtered by a case-insensitive name fragment."""
    session = get_or_create_session(player, generator)
    return {
        "player": player,
        "discovered": session.discovered_count,
        "concepts": [c.to_dict() for c in session.search_inventory(search)],
    }


@app.get("/players/{player}/recipes")
async def get_recipes(player: str, generator: ConceptGenerator = Depends(get_generator)):
    session = get_or_create_session(player, generator)
    return {"player": player, "recipes": [r.to_dict() for r in session.recipes()]}


@app.get("/players/{player}/workspace")
async def get_workspace(player: str, generator: ConceptGenerator = Depends(get_generator)):
    session = get_or_create_session(player, generator)
    return {"player": player, "tokens": [t.to_dict() for t in session.workspace.tokens]}


@app.post("/players/{player}/workspace/tokens")
async def add_token(player: str, req: AddTokenRequest, generator: ConceptGenerator = Depends(get_generator)):
    """Place a discovered concept on the workspace."""
    session = get_or_create_session(player, generator)
    concept = _require_concept(session, req.name)
    token = session.workspace.add_token(concept, viewport_width=req.viewport_width)
    return token.to_dict()


@app.post("/players/{player}/workspace/tokens/{token_id}/drop", response_model=DropResponse)
async def drop_token(player: str, token_id: str, req: DropRequest, generator: ConceptGenerator = Depends(get_generator)):
    """
    Report a drag release.

    Moves the token, or combines it with the first token it landed on and
    waits for the result.
    """
    session = get_or_create_session(player, generator)
    if session.workspace.get(token_id) is None:
        raise HTTPException(status_code=404, detail=f"Token '{token_id}' not on workspace")
    result = await session.workspace.drop(token_id, req.x, req.y)
    return _drop_response(result)


@app.delete("/players/{player}/workspace/tokens/{token_id}")
async def remove_token(player: str, token_id: str, generator: ConceptGenerator = Depends(get_generator)):
    session = get_or_create_session(player, generator)
    if not session.workspace.remove_token(token_id):
        raise HTTPException(status_code=404, detail=f"Token '{token_id}' not on workspace")
    return {"status": "removed", "id": token_id}


@app.delete("/players/{player}/workspace")
async def clear_workspace(player: str, generator: ConceptGenerator = Depends(get_generator)):
    session = get_or_create_session(player, generator)
    session.workspace.clear_workspace()
    return {"status": "cleared", "player": player}


@app.post("/players/{player}/combine")
async def combine(player: str, req: CombineRequest, generator: ConceptGenerator = Depends(get_generator)):
    """Resolve two discovered concepts without touching the workspace."""
    session = get_or_create_session(player, generator)
    first = _require_concept(session, req.first)
    second = _require_concept(session, req.second)
    result = await session.combine(first, second)
    if result is None:
        return {"status": "rejected", "result": None, "notice": REJECTION_NOTICE}
    return {"status": "combined", "result": result.to_dict()}


@app.post("/players/{player}/reset")
async def reset(player: str, req: ResetRequest, generator: ConceptGenerator = Depends(get_generator)):
    """Restore seed concepts and forget every recipe. Requires confirm=true."""
    session = get_or_create_session(player, generator)
    if not session.workspace.reset_all(lambda _prompt: req.confirm):
        raise HTTPException(status_code=400, detail="Reset not confirmed")
    return {"status": "reset", "player": player, "discovered": session.discovered_count}


@app.delete("/players/{player}")
async def drop_session(player: str):
    """Forget the live sandbox (saved discoveries stay on disk)."""
    session = alchemy_sessions.pop(player, None)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Player '{player}' not found")
    session.close()
    return {"status": "deleted", "player": player}


# ============================================================================
# Server Startup
# ============================================================================

def start_server(host: str = None, port: int = None, reload: bool = None):
    """Start the Alchemy server."""
    config_file = os.getenv("ALCHEMY_CONFIG_FILE")
    if config_file:
        count = Config.load_file(config_file)
        print(f"[Server] Applied {count} settings from {config_file}")
    host = host or Config.server.HOST
    port = port or Config.server.PORT
    if reload is None: reload = Config.server.RELOAD
    logging.basicConfig(level=logging.DEBUG if Config.core.DEBUG else logging.INFO)
    print(f"""
+----------------------------------------------------------+
|              Alchemy Server Starting                     |
+----------------------------------------------------------+
|  Host: {host:<50}|
|  Port: {port:<50}|
|  Memory Dir: {Config.storage.MEMORY_DIR:<44}|
+----------------------------------------------------------+
""")

    uvicorn.run(
        "alchemy.server:app",
        host=host,
        port=port,
        reload=reload,
        log_level="info"
    )


if __name__ == "__main__":
    start_server(reload=True)
