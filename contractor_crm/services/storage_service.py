"""Storage service — project photo/video uploads to Supabase Storage (prod) or local disk (dev).

Supabase bucket: SUPABASE_STORAGE_BUCKET (default ``project-assets``).
Local fallback: instance/uploads/ directory.

Images up to 10 MB (jpeg, png, webp, gif); videos up to 50 MB (mp4, webm).
"""

import logging
import os
import uuid

import requests
from flask import current_app

logger = logging.getLogger(__name__)

MAX_IMAGE_SIZE = 10 * 1024 * 1024
MAX_VIDEO_SIZE = 50 * 1024 * 1024

IMAGE_TYPES = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/gif": ".gif",
}

VIDEO_TYPES = {
    "video/mp4": ".mp4",
    "video/webm": ".webm",
}


def _get_supabase_config():
    """Return Supabase storage config if available, else None."""
    url = current_app.config.get("SUPABASE_URL")
    key = current_app.config.get("SUPABASE_SERVICE_KEY")
    bucket = current_app.config.get("SUPABASE_STORAGE_BUCKET") or "project-assets"

    if url and key:
        return {"url": url.rstrip("/"), "key": key, "bucket": bucket}
    return None


def asset_kind(content_type):
    """'image', 'video' or None for an unsupported MIME type."""
    if content_type in IMAGE_TYPES:
        return "image"
    if content_type in VIDEO_TYPES:
        return "video"
    return None


def validate_file(file):
    """Validate an uploaded file (from request.files).

    Returns (kind: str|None, error: str|None).
    """
    if not file or not file.filename:
        return None, "No file provided."

    kind = asset_kind(file.content_type)
    if kind is None:
        return None, (
            f"File type '{file.content_type}' is not allowed. "
            "Accepted: JPEG, PNG, WebP, GIF, MP4, WebM."
        )

    # Check file size (read + seek back)
    file.seek(0, os.SEEK_END)
    size = file.tell()
    file.seek(0)

    limit = MAX_IMAGE_SIZE if kind == "image" else MAX_VIDEO_SIZE
    if size > limit:
        return None, (
            f"File is too large ({size / (1024*1024):.1f} MB). "
            f"Maximum for {kind}s is {limit // (1024*1024)} MB."
        )
    if size == 0:
        return None, "File is empty."

    return kind, None


def upload_asset(file, kind):
    """Upload a validated file and return asset metadata.

    Args:
        file: Werkzeug FileStorage from request.files
        kind: "image" or "video" (from validate_file)

    Returns dict with:
        asset_id: storage path, stable identifier for the asset
        url: URL to access the file
        type: image | video
        filename: original filename
    """
    content_type = file.content_type
    ext = (IMAGE_TYPES.get(content_type) or VIDEO_TYPES.get(content_type))
    storage_path = f"{kind}s/{uuid.uuid4().hex}{ext}"
    data = file.read()

    supabase = _get_supabase_config()
    if supabase:
        url = _upload_supabase(supabase, storage_path, data, content_type)
    else:
        url = _upload_local(storage_path, data)

    return {
        "asset_id": storage_path,
        "url": url,
        "type": kind,
        "filename": file.filename,
    }


def _upload_supabase(config, path, data, content_type):
    """Upload to Supabase Storage. Returns public URL."""
    url = f"{config['url']}/storage/v1/object/{config['bucket']}/{path}"

    headers = {
        "Authorization": f"Bearer {config['key']}",
        "Content-Type": content_type,
        "x-upsert": "true",
    }

    try:
        resp = requests.post(url, headers=headers, data=data, timeout=60)
        resp.raise_for_status()

        public_url = f"{config['url']}/storage/v1/object/public/{config['bucket']}/{path}"
        logger.info(f"Uploaded to Supabase: {path}")
        return public_url

    except requests.RequestException as e:
        logger.error(f"Supabase upload failed: {e}")
        # Fall back to local
        return _upload_local(path, data)


def _upload_local(path, data):
    """Upload to local filesystem (dev fallback). Returns URL path."""
    upload_dir = os.path.join(
        current_app.instance_path, "uploads", os.path.dirname(path)
    )
    os.makedirs(upload_dir, exist_ok=True)

    filepath = os.path.join(current_app.instance_path, "uploads", path)
    with open(filepath, "wb") as f:
        f.write(data)

    logger.info(f"Uploaded locally: {filepath}")
    # Return a URL path that our Flask app can serve
    return f"/uploads/{path}"
