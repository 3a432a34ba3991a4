"""Local slideshow server for the photos of one container."""

from __future__ import annotations

import io
import logging
import random

from flask import Flask, abort, jsonify, send_file

from nixplay import mime
from nixplay.content_cache import ContentCache
from nixplay.errors import InvalidInputError

_LOGGER = logging.getLogger(__name__)


def unique_names(container, ctx=None) -> list[str]:
    """Names that :meth:`Container.photo_with_unique_name` resolves, one per photo."""
    names = []
    for photo in container.photos(ctx):
        name = photo.name(ctx)
        if len(container.photos_with_name(name, ctx)) > 1:
            name = photo.generate_unique_name(ctx)
        names.append(name)
    return names


def create_app(container, content_cache: ContentCache):
    app = Flask(__name__)

    def _fetch_and_cache(photo):
        data = photo.read()
        content_cache.put(photo.id, data)
        # Drop the bytes again once the photo is deleted through this client.
        photo.add_deleted_listener(content_cache)
        return data

    def _serve(photo):
        name = photo.name()
        data = content_cache.get(photo.id)
        if data is None:
            _LOGGER.debug("cache miss for %s", name)
            data = _fetch_and_cache(photo)
        try:
            mime_type = mime.type_for_name(name)
        except InvalidInputError:
            mime_type = "application/octet-stream"
        return send_file(io.BytesIO(data), mimetype=mime_type, download_name=name)

    @app.get("/photos")
    def random_photo():
        photos = container.photos()
        if not photos:
            abort(404, description="No photos available")
        return _serve(random.choice(photos))

    @app.get("/photos/list")
    def list_photos():
        return jsonify(unique_names(container))

    @app.get("/photos/<path:name>")
    def get_photo(name):
        photo = container.photo_with_unique_name(name)
        if photo is None:
            abort(404, description=f"Photo '{name}' not found")
        return _serve(photo)

    @app.get("/cache/stats")
    def cache_stats():
        return jsonify(content_cache.stats)

    return app
