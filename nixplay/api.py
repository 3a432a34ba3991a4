"""Request builders and response decoding for the Nixplay REST endpoints.

Nothing here talks to the network; the facades execute the requests through a
:class:`nixplay.transport.Doer`.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass
from typing import Any, Optional

import requests

from nixplay.config import DEFAULT_API_URL, DEFAULT_MONITOR_URL, DEFAULT_PAGE_SIZE
from nixplay.errors import TransportError
from nixplay.transport import form_request
from nixplay.types import ContainerType

# Name of the field identifying the target container of an upload.
UPLOAD_ID_FIELDS = {
    ContainerType.ALBUM: "albumId",
    ContainerType.PLAYLIST: "playlistId",
}

MONITOR_DUPLICATE_BODY = "Error: image-exists"


@dataclass(frozen=True)
class ContainerRecord:
    container_type: ContainerType
    nixplay_id: int
    name: str
    photo_count: int


@dataclass(frozen=True)
class PhotoRecord:
    name: Optional[str]
    content_hash: Optional[str]
    nixplay_id: Optional[int]
    url: Optional[str]
    size: Optional[int] = None
    playlist_item_id: Optional[str] = None


@dataclass(frozen=True)
class UploadTarget:
    container_type: ContainerType
    nixplay_id: int

    @property
    def id_field(self) -> str:
        return UPLOAD_ID_FIELDS[self.container_type]


@dataclass(frozen=True)
class UploadRegistration:
    storage_url: str
    storage_fields: dict[str, str]
    monitor_ids: list[str]


class Endpoints:
    def __init__(self, api_url: str = DEFAULT_API_URL, monitor_url: str = DEFAULT_MONITOR_URL):
        self.api_url = api_url.rstrip("/")
        self.monitor_url = monitor_url.rstrip("/")

    def _url(self, path: str) -> str:
        return f"{self.api_url}{path}"

    # Containers

    def albums(self) -> list[requests.Request]:
        # Web uploaded and email uploaded albums live behind different listings.
        return [
            requests.Request("GET", self._url("/v2/albums/web/json/")),
            requests.Request("GET", self._url("/v2/albums/email/json/")),
        ]

    def playlists(self) -> list[requests.Request]:
        return [requests.Request("GET", self._url("/v3/playlists"))]

    def containers(self, container_type: ContainerType) -> list[requests.Request]:
        if container_type == ContainerType.ALBUM:
            return self.albums()
        return self.playlists()

    def create_container(self, container_type: ContainerType, name: str) -> requests.Request:
        if container_type == ContainerType.ALBUM:
            return form_request(self._url("/album/create/json/"), {"name": name})
        return requests.Request("POST", self._url("/v3/playlists"), json={"name": name})

    def delete_container(self, container_type: ContainerType, nixplay_id: int) -> requests.Request:
        if container_type == ContainerType.ALBUM:
            return requests.Request("POST", self._url(f"/album/{nixplay_id}/delete/json/"))
        return requests.Request("DELETE", self._url(f"/v3/playlists/{nixplay_id}"))

    # Photos

    def photos_page(self, container_type: ContainerType, nixplay_id: int,
                    page: int, page_size: int) -> requests.Request:
        if container_type == ContainerType.ALBUM:
            # Album pages are numbered from 1.
            return requests.Request(
                "GET", self._url(f"/album/{nixplay_id}/pictures/json/"),
                params={"page": page + 1, "limit": page_size},
            )
        return requests.Request(
            "GET", self._url(f"/v3/playlists/{nixplay_id}/slides"),
            params={"size": page_size, "offset": page * page_size},
        )

    def picture(self, photo_nixplay_id: int) -> requests.Request:
        return requests.Request("GET", self._url(f"/picture/{photo_nixplay_id}/"))

    def delete_photo(self, container_type: ContainerType, container_nixplay_id: int,
                     photo: PhotoRecord) -> requests.Request:
        if container_type == ContainerType.ALBUM:
            return requests.Request("POST", self._url(f"/picture/{photo.nixplay_id}/delete/json/"))
        # Removing the playlist item keeps the photo in the album owning it.
        return requests.Request(
            "DELETE", self._url(f"/v3/playlists/{container_nixplay_id}/items"),
            params={"id": photo.playlist_item_id},
        )

    # Upload

    def upload_token(self, target: UploadTarget) -> requests.Request:
        return form_request(self._url("/v3/upload/receivers/"), {
            target.id_field: target.nixplay_id,
            "total": 1,
        })

    def register_upload(self, target: UploadTarget, token: str, name: str,
                        mime_type: str, size: int) -> requests.Request:
        return form_request(self._url("/v3/photo/upload/"), {
            target.id_field: target.nixplay_id,
            "uploadToken": token,
            "fileName": name,
            "fileType": mime_type,
            "fileSize": size,
        })

    def upload_monitor(self, monitor_id: str) -> requests.Request:
        return requests.Request("GET", f"{self.monitor_url}/status", params={"id": monitor_id})


def decoder(what: str):
    """Report malformed responses as transport errors instead of KeyErrors."""

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except (AttributeError, KeyError, TypeError, ValueError) as err:
                raise TransportError(f"malformed {what} response: {err!r}") from err
        return wrapper

    return decorator


def _expect(data: Any, kind: type, what: str):
    if not isinstance(data, kind):
        raise TransportError(f"unexpected {what} response: {data!r}")
    return data


@decoder("container list")
def decode_containers(container_type: ContainerType, data: Any) -> list[ContainerRecord]:
    records = []
    for item in _expect(data, list, f"{container_type.value} list"):
        if container_type == ContainerType.ALBUM:
            name, count = item["title"], item.get("photo_count", -1)
        else:
            name, count = item["name"], item.get("picture_count", -1)
        records.append(ContainerRecord(container_type, int(item["id"]), name, int(count)))
    return records


@decoder("create container")
def decode_created_container(container_type: ContainerType, name: str, data: Any) -> ContainerRecord:
    if container_type == ContainerType.ALBUM:
        albums = decode_containers(container_type, data)
        if len(albums) != 1:
            raise TransportError(f"incorrect number of created containers returned: {len(albums)}")
        return albums[0]
    # Only the new ID comes back, the service is trusted to honour the name.
    data = _expect(data, dict, "create playlist")
    return ContainerRecord(container_type, int(data["playlistId"]), name, 0)


def _optional_int(value) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


@decoder("album photo")
def decode_album_photo(item: dict) -> PhotoRecord:
    return PhotoRecord(
        name=item.get("filename") or None,
        content_hash=item.get("md5") or None,
        nixplay_id=_optional_int(item.get("id")),
        url=item.get("url") or None,
        size=_optional_int(item.get("fileSize")),
    )


@decoder("playlist slide")
def decode_playlist_slide(item: dict) -> PhotoRecord:
    # Slides carry no hash field, the hash is recovered from originalUrl.
    return PhotoRecord(
        name=item.get("filename") or None,
        content_hash=None,
        nixplay_id=_optional_int(item.get("pictureId")),
        url=item.get("originalUrl") or None,
        playlist_item_id=item.get("playlistItemId") or None,
    )


@decoder("photo page")
def decode_photos_page(container_type: ContainerType, data: Any) -> list[PhotoRecord]:
    data = _expect(data, dict, "photo page")
    if container_type == ContainerType.ALBUM:
        return [decode_album_photo(item) for item in data.get("photos") or []]
    return [decode_playlist_slide(item) for item in data.get("slides") or []]


@decoder("upload token")
def decode_upload_token(data: Any) -> str:
    token = _expect(data, dict, "upload token").get("token")
    if not token:
        raise TransportError("upload token missing from response")
    return token


@decoder("upload")
def decode_upload_registration(data: Any) -> UploadRegistration:
    data = _expect(_expect(data, dict, "upload").get("data"), dict, "upload data")
    return UploadRegistration(
        storage_url=data["s3UploadUrl"],
        storage_fields={
            "key": data["key"],
            "acl": data["acl"],
            "content-type": data["fileType"],
            "x-amz-meta-batch-upload-id": data["batchUploadId"],
            "success_action_status": "201",
            "AWSAccessKeyId": data["AWSAccessKeyId"],
            "Policy": data["Policy"],
            "Signature": data["Signature"],
        },
        monitor_ids=list(data.get("userUploadIds") or []),
    )


@dataclass(frozen=True)
class Connection:
    """Everything a facade needs to reach the service."""

    doer: Any
    storage_doer: Any
    endpoints: Endpoints
    page_size: int = DEFAULT_PAGE_SIZE
