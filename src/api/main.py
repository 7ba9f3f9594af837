"""FastAPI admin application for SatoshiPay Publisher."""

from datetime import datetime
from typing import Any, Optional, Union

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse
from loguru import logger
from pydantic import BaseModel

from ..plugin.admin import META_GOOD_ID, AdminPlugin
from ..plugin.frontend import FrontendPlugin
from ..provider.exceptions import ApiError
from ..storage.database import Database
from ..storage.models import Post
from ..utils.config import VERSION, get_config

app = FastAPI(
    title="SatoshiPay Publisher API",
    description="Admin API for paid posts synchronized with SatoshiPay goods",
    version=VERSION,
)

config = get_config()

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.api.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_db: Optional[Database] = None


def get_db() -> Database:
    """Get database (singleton)."""
    global _db
    if _db is None:
        _db = Database(config.database.url, echo=config.database.echo)
    return _db


def get_admin_plugin(db: Database = Depends(get_db)) -> AdminPlugin:
    return AdminPlugin(db, config)


def get_frontend_plugin(db: Database = Depends(get_db)) -> FrontendPlugin:
    return FrontendPlugin(db, config)


# ============================================================================
# Request models
# ============================================================================

FormValue = Optional[Union[str, int, bool]]


class ApiSettingsIn(BaseModel):
    auth_key: Optional[str] = None
    auth_secret: Optional[str] = None


class AdBlockerDetectionSettingsIn(BaseModel):
    enabled: FormValue = None
    price: FormValue = None


class ClientSettingsIn(BaseModel):
    client_url: Optional[str] = None


class PricingIn(BaseModel):
    """Pricing fields as posted by the editor sidebar."""

    satoshipay_pricing_enabled: FormValue = None
    satoshipay_pricing_disabled: FormValue = None
    satoshipay_pricing_satoshi: FormValue = None


class PostIn(PricingIn):
    post_title: Optional[str] = None
    post_content: Optional[str] = None
    post_type: Optional[str] = None
    post_status: Optional[str] = None


def _form(model: PricingIn) -> dict:
    return model.model_dump(include=set(PricingIn.model_fields), exclude_none=True)


def _post_payload(post: Post, plugin: AdminPlugin) -> dict:
    payload = {
        "id": post.id,
        "title": post.post_title,
        "type": post.post_type,
        "status": post.post_status,
        "url": plugin.permalink(post.id),
        "satoshipay_pricing": plugin.get_pricing(post.id),
        "satoshipay_id": plugin.db.get_post_meta(post.id, META_GOOD_ID),
    }
    if post.post_type == "attachment":
        payload = plugin.prepare_attachment(payload)
    return payload


def _errors_response(errors) -> dict:
    return {"saved": not errors, "errors": [e.model_dump() for e in errors]}


@app.on_event("startup")
async def startup_event():
    """Run on application startup."""
    logger.info("SatoshiPay Publisher API starting up")


@app.on_event("shutdown")
async def shutdown_event():
    """Run on application shutdown."""
    logger.info("SatoshiPay Publisher API shutting down")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "SatoshiPay Publisher API",
        "version": VERSION,
        "status": "running",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
    }


# ============================================================================
# Settings
# ============================================================================


@app.get("/settings")
def read_settings(plugin: AdminPlugin = Depends(get_admin_plugin)):
    """Current settings. The API secret is never returned."""
    return plugin.get_settings()


@app.put("/settings/api")
def update_api_settings(data: ApiSettingsIn, plugin: AdminPlugin = Depends(get_admin_plugin)):
    """Store API credentials if the provider accepts them."""
    try:
        errors = plugin.update_api_settings(data.model_dump(exclude_none=True))
    except Exception as e:
        logger.error(f"Error updating API settings: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return _errors_response(errors)


@app.put("/settings/ad-blocker-detection")
def update_ad_blocker_detection_settings(
    data: AdBlockerDetectionSettingsIn, plugin: AdminPlugin = Depends(get_admin_plugin)
):
    """Store ad blocker detection settings and resync free posts."""
    try:
        errors = plugin.update_ad_blocker_detection_settings(data.model_dump(exclude_none=True))
    except Exception as e:
        logger.error(f"Error updating ad blocker detection settings: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return _errors_response(errors)


@app.put("/settings/client")
def update_client_settings(data: ClientSettingsIn, plugin: AdminPlugin = Depends(get_admin_plugin)):
    """Store the widget client URL."""
    errors = plugin.update_client_settings(data.model_dump(exclude_none=True))
    return _errors_response(errors)


# ============================================================================
# Posts
# ============================================================================


@app.post("/posts", status_code=201)
def create_post(data: PostIn, plugin: AdminPlugin = Depends(get_admin_plugin)):
    """Create a post and sync its good."""
    try:
        post_id = plugin.db.create_post(
            post_title=data.post_title or "",
            post_content=data.post_content or "",
            post_type=data.post_type or "post",
            post_status=data.post_status or "draft",
        )
        plugin.on_save_post(post_id, _form(data))
        return _post_payload(plugin.db.get_post(post_id), plugin)

    except Exception as e:
        logger.error(f"Error creating post: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/posts/{post_id}")
def read_post(post_id: int, plugin: AdminPlugin = Depends(get_admin_plugin)):
    """Get a post with its SatoshiPay metadata."""
    post = plugin.db.get_post(post_id)
    if not post:
        raise HTTPException(status_code=404, detail="Post not found")
    return _post_payload(post, plugin)


@app.put("/posts/{post_id}")
def update_post(post_id: int, data: PostIn, plugin: AdminPlugin = Depends(get_admin_plugin)):
    """Update a post, sync its good and check its paid-content tags."""
    try:
        found = plugin.db.update_post(
            post_id,
            post_title=data.post_title,
            post_content=data.post_content,
            post_type=data.post_type,
            post_status=data.post_status,
        )
        if not found:
            raise HTTPException(status_code=404, detail="Post not found")

        plugin.on_save_post(post_id, _form(data))
        plugin.on_update_post(post_id)
        return _post_payload(plugin.db.get_post(post_id), plugin)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating post {post_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.delete("/posts/{post_id}")
def delete_post(post_id: int, plugin: AdminPlugin = Depends(get_admin_plugin)):
    """Delete the post's good, then the post."""
    try:
        if not plugin.delete_post(post_id):
            raise HTTPException(status_code=404, detail="Post not found")
        return {"deleted": True, "post_id": post_id}

    except HTTPException:
        raise
    except ApiError as e:
        logger.error(f"Error deleting good of post {post_id}: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    except Exception as e:
        logger.error(f"Error deleting post {post_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/posts/{post_id}/edit")
def edit_post(
    post_id: int,
    user_id: int = Query(0, ge=0, description="Editing user"),
    plugin: AdminPlugin = Depends(get_admin_plugin),
):
    """Open a post for editing, returning pending admin notices."""
    post = plugin.db.get_post(post_id)
    if not post:
        raise HTTPException(status_code=404, detail="Post not found")

    plugin.on_edit_post(post_id, user_id=user_id)
    notices = plugin.notices.pop(post_id=post_id, user_id=user_id)

    return {
        "post": _post_payload(post, plugin),
        "notices": [n.model_dump() for n in notices],
        "notices_html": plugin.notices.render(notices),
    }


@app.post("/posts/{post_id}/pricing")
def set_pricing(post_id: int, data: PricingIn, plugin: AdminPlugin = Depends(get_admin_plugin)):
    """Save pricing from the editor sidebar."""
    try:
        return plugin.set_pricing(post_id, _form(data))
    except LookupError:
        raise HTTPException(status_code=404, detail="Post not found")


@app.get("/posts/{post_id}/page", response_class=HTMLResponse)
def render_post(post_id: int, frontend: FrontendPlugin = Depends(get_frontend_plugin)):
    """Public page of a published post with the payment widget."""
    page = frontend.render_post(post_id)
    if page is None:
        raise HTTPException(status_code=404, detail="Post not found")
    return page


# ============================================================================
# Notices and sync
# ============================================================================


@app.get("/notices")
def read_notices(
    post_id: Optional[int] = Query(None, description="Post being edited"),
    user_id: int = Query(0, ge=0, description="Current user"),
    plugin: AdminPlugin = Depends(get_admin_plugin),
):
    """Pop pending admin notices."""
    notices = plugin.notices.pop(post_id=post_id, user_id=user_id)
    return {
        "notices": [n.model_dump() for n in notices],
        "html": plugin.notices.render(notices),
    }


@app.post("/sync")
def sync_all(plugin: AdminPlugin = Depends(get_admin_plugin)) -> dict[str, Any]:
    """Add missing secrets and push ad blocker pricing for all free posts."""
    try:
        secrets_added = plugin.add_secret_metadata()
        goods_synced = plugin.update_provider_metadata()
    except Exception as e:
        logger.error(f"Error during sync: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    return {"secrets_added": secrets_added, "goods_synced": goods_synced}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.api.main:app",
        host=config.api.host,
        port=config.api.port,
        reload=False,
    )
