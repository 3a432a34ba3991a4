import hashlib

import pytest

from fakes import FakeNixplay, photo_url
from nixplay import identity
from nixplay.client import Client
from nixplay.config import ClientOptions
from nixplay.errors import FormatError, NixplayError, TransportError
from nixplay.photo import Photo, size_from_content_range
from nixplay.types import ContainerType


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def service():
    return FakeNixplay()


@pytest.fixture
def client(service):
    return Client(service, ClientOptions(), storage_doer=service)


@pytest.fixture
def album(service, client):
    album_id = service.add_album("Holiday")
    service.add_album_photo(album_id, "beach.jpg", b"beach pixels")
    return client.container(ContainerType.ALBUM, "Holiday")


@pytest.fixture
def playlist(service, client):
    album_id = service.add_album("Source")
    picture = service.add_album_photo(album_id, "sunset.jpg", b"sunset pixels")
    playlist_id = service.add_playlist("Frame")
    service.link_to_playlist(playlist_id, picture)
    return client.container(ContainerType.PLAYLIST, "Frame")


def md5(data):
    return hashlib.md5(data).hexdigest()


# ---------------------------------------------------------------------------
# Content-Range
# ---------------------------------------------------------------------------

class TestSizeFromContentRange:
    def test_parses_total(self):
        assert size_from_content_range("bytes 0-0/12345") == 12345

    @pytest.mark.parametrize("header", [None, "", "bytes 0-0/*", "bytes */100", "items 0-0/10"])
    def test_rejects_other_forms(self, header):
        with pytest.raises(FormatError):
            size_from_content_range(header)


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------

class TestPhotoIdentity:
    def test_album_photo_hash_from_listing(self, album):
        photo = album.photos()[0]
        assert photo.content_hash.hex() == md5(b"beach pixels")

    def test_playlist_photo_hash_from_url(self, playlist):
        photo = playlist.photos()[0]
        assert photo.content_hash.hex() == md5(b"sunset pixels")

    def test_id_derived_from_container_and_content(self, album):
        photo = album.photos()[0]
        assert photo.id == identity.photo_id(album.id, photo.content_hash)

    def test_construction_requires_hash_or_url(self, album, client):
        with pytest.raises(FormatError):
            Photo(album, client._connection, "x.jpg")

    def test_unique_name(self, album):
        photo = album.photos()[0]
        assert photo.generate_unique_name() == f"beach ({photo.id.hex()[:16]}).jpg"


# ---------------------------------------------------------------------------
# Lazily resolved attributes
# ---------------------------------------------------------------------------

class TestPhotoAttributes:
    def test_name_from_listing(self, album, service):
        photo = album.photos()[0]
        before = len(service.requests)
        assert photo.name() == "beach.jpg"
        assert len(service.requests) == before

    def test_name_from_picture_endpoint(self, album, service, client):
        picture = service.albums[album.nixplay_id]["photos"][0]
        photo = Photo(album, client._connection, content_hash=picture["md5"], nixplay_id=picture["id"])
        assert photo.name() == "beach.jpg"
        assert service.count("GET", f"/picture/{picture['id']}/") == 1

    def test_name_unknown(self, album, client):
        photo = Photo(album, client._connection, content_hash=md5(b"x"))
        with pytest.raises(NixplayError, match="photo_name: failed to determine photo name"):
            photo.name()

    def test_size_from_listing(self, album, service):
        photo = album.photos()[0]
        assert photo.size() == len(b"beach pixels")

    def test_size_from_range_request(self, playlist, service):
        photo = playlist.photos()[0]
        assert photo.size() == len(b"sunset pixels")
        assert photo.size() == len(b"sunset pixels")
        ranged = [r for r in service.requests if r.headers.get("Range")]
        assert len(ranged) == 1
        assert ranged[0].headers["Range"] == "bytes=0-0"

    def test_size_request_failure(self, playlist, service):
        photo = playlist.photos()[0]
        service.storage.clear()
        with pytest.raises(TransportError) as info:
            photo.size()
        assert info.value.status_code == 404

    def test_url_and_nixplay_id(self, album, service):
        picture = service.albums[album.nixplay_id]["photos"][0]
        photo = album.photos()[0]
        assert photo.url() == picture["url"]
        assert photo.nixplay_id() == picture["id"]


# ---------------------------------------------------------------------------
# Download
# ---------------------------------------------------------------------------

class TestPhotoDownload:
    def test_read(self, album):
        assert album.photos()[0].read() == b"beach pixels"

    def test_open_learns_size(self, playlist, service):
        photo = playlist.photos()[0]
        stream = photo.open()
        try:
            assert stream.read() == b"sunset pixels"
        finally:
            stream.close()
        assert photo.size() == len(b"sunset pixels")
        assert not [r for r in service.requests if r.headers.get("Range")]

    def test_open_missing_object(self, album, service):
        service.storage.clear()
        with pytest.raises(TransportError, match="open_photo"):
            album.photos()[0].open()


# ---------------------------------------------------------------------------
# Uploaded photos
# ---------------------------------------------------------------------------

class TestUploadedPhoto:
    def test_url_resolved_by_relisting_once(self, album, service):
        album.photos()
        photo = album.add_photo("new.jpg", b"new pixels")
        path = f"/album/{album.nixplay_id}/pictures/json/"
        pages_before = service.count("GET", path)

        assert photo.url() == photo_url(md5(b"new pixels"))
        assert service.count("GET", path) == pages_before + 2
        assert photo.nixplay_id() == service.albums[album.nixplay_id]["photos"][-1]["id"]
        assert service.count("GET", path) == pages_before + 2

    def test_url_missing_from_listing(self, album, service, client):
        photo = Photo(album, client._connection, "ghost.jpg", content_hash=md5(b"ghost"))
        with pytest.raises(NixplayError, match="photo_url: incomplete photo data in list"):
            photo.url()

    def test_uploaded_playlist_photo_can_be_deleted(self, playlist, service):
        photo = playlist.add_photo("new.jpg", b"new pixels")
        photo.delete()
        slides = service.playlists[playlist.nixplay_id]["slides"]
        assert [s["filename"] for s in slides] == ["sunset.jpg"]
        assert playlist.photo_with_id(photo.id) is None


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------

class TestPhotoDelete:
    def test_album_photo_deleted_remotely_and_from_cache(self, album, service):
        photo = album.photos()[0]
        photo.delete()
        assert service.albums[album.nixplay_id]["photos"] == []
        assert album.photos() == []
        assert album.photo_with_id(photo.id) is None
        assert album.photos_with_name("beach.jpg") == []
        assert album.photo_with_unique_name("beach.jpg") is None

    def test_playlist_photo_only_unlinked(self, playlist, service):
        photo = playlist.photos()[0]
        photo.delete()
        assert service.playlists[playlist.nixplay_id]["slides"] == []
        source = [a for a in service.albums.values() if a["title"] == "Source"][0]
        assert len(source["photos"]) == 1
        assert service.count("DELETE", f"/v3/playlists/{playlist.nixplay_id}/items") == 1

    def test_failed_delete_keeps_photo(self, album, service):
        photo = album.photos()[0]
        service.fail("POST", f"/picture/{photo.nixplay_id()}/delete/json/", status=500)
        with pytest.raises(TransportError, match="delete_photo"):
            photo.delete()
        assert album.photo_with_id(photo.id) is photo
        assert album.photo_count() == 1
