"""
ChromeSec - FastAPI Backend
REST API for driving one browser session and running scans against it.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import List, Optional
from urllib.parse import urlparse

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from chromesec import __version__
from chromesec.browser import BrowserDriver, BrowserSession, PlaywrightDriver
from chromesec.config import ScannerConfig, get_config, save_user_config
from chromesec.console import log
from chromesec.errors import LaunchError, SessionNotReadyError, UnsupportedPlatformError
from chromesec.identity import IdentityProvider
from chromesec.proxy import ProxyEndpoint, ProxyRotator
from chromesec.reports import ReportSink
from chromesec.scanner import ScanOrchestrator


# ── Globals ─────────────────────────────────────────────────────

config: ScannerConfig = get_config()
driver: BrowserDriver = PlaywrightDriver()
identity = IdentityProvider()
rotator = ProxyRotator(config.proxies)

# Current browser session (one at a time)
session: Optional[BrowserSession] = None
session_lock = asyncio.Lock()
scan_lock = asyncio.Lock()


# ── Lifespan ────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown."""
    log("API", f"Backend running on {config.api.host}:{config.api.port}")
    yield
    if session is not None:
        await session.close()


# ── FastAPI App ─────────────────────────────────────────────────

app = FastAPI(
    title="ChromeSec API",
    version=__version__,
    lifespan=lifespan,
)


# ── Pydantic Models ────────────────────────────────────────────

class ProxyModel(BaseModel):
    address: str
    username: Optional[str] = None
    password: Optional[str] = None

class ProxyList(BaseModel):
    proxies: List[ProxyModel] = []

class LaunchRequest(BaseModel):
    headless: Optional[bool] = None
    no_sandbox: Optional[bool] = None
    disable_web_security: Optional[bool] = None

class ConfigUpdate(BaseModel):
    headless: Optional[bool] = None
    no_sandbox: Optional[bool] = None
    disable_web_security: Optional[bool] = None
    probe_timeout_s: Optional[float] = None

class ScanRequest(BaseModel):
    url: str


# ── Config / Proxies ───────────────────────────────────────────

@app.get("/api/config")
async def get_app_config():
    """Get current configuration (proxy passwords masked)."""
    return {
        "headless": config.launch.headless,
        "no_sandbox": config.launch.no_sandbox,
        "disable_web_security": config.launch.disable_web_security,
        "executable_path": config.launch.executable_path,
        "profiles_dir": str(config.profiles_dir),
        "reports_dir": str(config.reports_dir),
        "probe_timeout_s": config.probe_timeout_s,
        "proxies": [p.to_dict(mask_password=True) for p in rotator.proxies],
    }

@app.post("/api/config")
async def update_app_config(req: ConfigUpdate):
    """Apply and persist config overrides. Takes effect on the next launch."""
    updates = req.model_dump(exclude_none=True)
    for key, value in updates.items():
        if key == "probe_timeout_s":
            config.probe_timeout_s = value
        else:
            setattr(config.launch, key, value)
    try:
        save_user_config(updates)
    except OSError as e:
        raise HTTPException(status_code=500, detail=f"Config save failed: {e}")
    return await get_app_config()

@app.post("/api/proxies")
async def set_proxies(req: ProxyList):
    """Replace the proxy rotation list. Applies to the next launch."""
    try:
        proxies = [ProxyEndpoint.from_dict(p.model_dump()) for p in req.proxies]
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    rotator.configure(proxies)
    return {"status": "ok", "count": len(proxies)}


# ── Session ────────────────────────────────────────────────────

def _session_info() -> dict:
    if session is None:
        return {"status": "none"}
    state = session.state
    return {
        "status": session.status.value,
        "profile_dir": str(state.profile_dir),
        "executable_path": state.executable_path,
        "user_agent": state.user_agent,
        "proxy": state.proxy.address if state.proxy else None,
    }

@app.get("/api/session")
async def session_status():
    return _session_info()

@app.post("/api/session/launch")
async def launch_session(req: LaunchRequest):
    """Launch a fresh browser session."""
    global session
    async with session_lock:
        if session is not None and session.is_launched:
            raise HTTPException(status_code=409, detail="A browser session is already running")

        overrides = req.model_dump(exclude_none=True)
        options = replace(config.launch, **overrides)
        candidate = BrowserSession(config=config, driver=driver, identity=identity, rotator=rotator)
        try:
            await candidate.launch(options)
        except UnsupportedPlatformError as e:
            raise HTTPException(status_code=500, detail=str(e))
        except LaunchError as e:
            raise HTTPException(status_code=502, detail=str(e))
        session = candidate
        return _session_info()

@app.post("/api/session/close")
async def close_session():
    """Close the current session. Safe to call repeatedly."""
    async with session_lock:
        if session is not None:
            await session.close()
        return _session_info()


# ── Scanning ───────────────────────────────────────────────────

@app.post("/api/scan")
async def run_scan(req: ScanRequest):
    """Run XSS, SQLi and CSRF probes against one URL."""
    parsed = urlparse(req.url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise HTTPException(status_code=400, detail="url must be an absolute http(s) URL")
    if session is None:
        raise HTTPException(status_code=409, detail="No browser session launched")

    async with scan_lock:
        try:
            result = await ScanOrchestrator(session).run_scan(req.url)
        except SessionNotReadyError as e:
            raise HTTPException(status_code=409, detail=str(e))
        except OSError as e:
            raise HTTPException(status_code=500, detail=f"Report write failed: {e}")
    return result.to_dict()

@app.get("/api/reports")
async def list_reports():
    """List stored report keys, newest first."""
    return {"reports": ReportSink(config.reports_dir).list_reports()}


# ── Health ──────────────────────────────────────────────────────

@app.get("/api/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "ok",
        "version": __version__,
        "session": session.status.value if session is not None else "none",
        "proxies": len(rotator),
    }
