import hashlib
import logging

import pytest

from fakes import FakeNixplay
from nixplay import identity
from nixplay.client import Client
from nixplay.config import ClientOptions
from nixplay.errors import DuplicateImageError, InvalidInputError
from nixplay.types import ContainerType, ContentHash


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def service():
    return FakeNixplay()


@pytest.fixture
def client(service):
    return Client(service, ClientOptions(page_size=2), storage_doer=service)


@pytest.fixture
def album_id(service):
    album_id = service.add_album("Holiday")
    for i in range(3):
        service.add_album_photo(album_id, f"img{i}.jpg", f"pixels {i}".encode())
    return album_id


@pytest.fixture
def album(client, album_id):
    return client.container(ContainerType.ALBUM, "Holiday")


@pytest.fixture
def playlist_id(service):
    source = service.add_album("Source")
    playlist_id = service.add_playlist("Frame")
    for i in range(3):
        picture = service.add_album_photo(source, f"slide{i}.jpg", f"slide {i}".encode())
        service.link_to_playlist(playlist_id, picture)
    return playlist_id


@pytest.fixture
def playlist(client, playlist_id):
    return client.container(ContainerType.PLAYLIST, "Frame")


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------

class TestContainerListing:
    def test_album_pages_are_one_based(self, album, service, album_id):
        assert sorted(p.name() for p in album.photos()) == ["img0.jpg", "img1.jpg", "img2.jpg"]
        pages = [r.params["page"] for r in service.requests
                 if r.url.endswith(f"/album/{album_id}/pictures/json/")]
        assert pages == [1, 2, 3]

    def test_playlist_pages_use_offsets(self, playlist, service, playlist_id):
        assert len(playlist.photos()) == 3
        offsets = [r.params["offset"] for r in service.requests
                   if r.url.endswith(f"/v3/playlists/{playlist_id}/slides")]
        assert offsets == [0, 2, 4]

    def test_listing_is_cached(self, album, service, album_id):
        album.photos()
        album.photos()
        album.photos_with_name("img0.jpg")
        assert service.count("GET", f"/album/{album_id}/pictures/json/") == 3

    def test_reset_cache_relists(self, album, service, album_id):
        album.photos()
        service.add_album_photo(album_id, "later.jpg", b"later")
        assert len(album.photos()) == 3
        album.reset_cache()
        assert len(album.photos()) == 4

    def test_photo_with_id(self, album):
        content_hash = ContentHash.of(b"pixels 1")
        photo = album.photo_with_id(identity.photo_id(album.id, content_hash))
        assert photo.name() == "img1.jpg"

    def test_photo_with_unknown_id(self, album):
        assert album.photo_with_id(identity.photo_id(album.id, ContentHash.of(b"?"))) is None

    def test_duplicate_names_get_unique_names(self, album, service, album_id):
        service.add_album_photo(album_id, "img0.jpg", b"other pixels")
        album.reset_cache()
        same_name = album.photos_with_name("img0.jpg")
        assert len(same_name) == 2
        assert album.photo_with_unique_name("img0.jpg") is None
        for photo in same_name:
            unique = f"img0 ({photo.id.hex()[:16]}).jpg"
            assert album.photo_with_unique_name(unique) is photo
        assert album.photo_with_unique_name("img1.jpg").name() == "img1.jpg"

    def test_repeated_playlist_content_is_reported(self, playlist, service, playlist_id, caplog):
        slide = service.playlists[playlist_id]["slides"][0]
        service.playlists[playlist_id]["slides"].insert(1, dict(slide, playlistItemId="item-dup"))
        playlist.reset_cache()
        with caplog.at_level(logging.WARNING, logger="nixplay.container"):
            photos = playlist.photos()
        assert len(photos) == 3
        assert "lists the same content more than once" in caplog.text


# ---------------------------------------------------------------------------
# Photo count
# ---------------------------------------------------------------------------

class TestPhotoCount:
    def test_count_from_container_listing(self, album, service, album_id):
        assert album.photo_count() == 3
        assert service.count("GET", f"/album/{album_id}/pictures/json/") == 0

    def test_unknown_count_walks_photos(self, client, service, album_id):
        album = client.container(ContainerType.ALBUM, "Holiday")
        album.reset_cache()
        assert album.photo_count() == 3
        assert service.count("GET", f"/album/{album_id}/pictures/json/") == 3

    def test_count_tracks_upload_and_delete(self, album):
        album.add_photo("new.jpg", b"new pixels")
        assert album.photo_count() == 4
        album.photos_with_name("img0.jpg")[0].delete()
        assert album.photo_count() == 3


# ---------------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------------

class TestAddPhoto:
    def test_added_without_relisting(self, album, service, album_id):
        album.photos()
        before = service.count("GET", f"/album/{album_id}/pictures/json/")
        photo = album.add_photo("new.jpg", b"new pixels")
        assert album.photo_with_id(photo.id) is photo
        assert album.photos_with_name("new.jpg") == [photo]
        assert service.count("GET", f"/album/{album_id}/pictures/json/") == before

    def test_photo_id_matches_listing(self, album):
        photo = album.add_photo("new.jpg", b"new pixels")
        album.reset_cache()
        listed = album.photo_with_id(photo.id)
        assert listed is not None and listed is not photo
        assert listed.content_hash == photo.content_hash

    def test_unknown_extension_rejected(self, album, service):
        before = len(service.requests)
        with pytest.raises(InvalidInputError, match="add_photo: upload_photo: describe_upload"):
            album.add_photo("notes.txt-unknown", b"text")
        assert len(service.requests) == before

    def test_duplicate_in_album(self, album):
        with pytest.raises(DuplicateImageError) as info:
            album.add_photo("again.jpg", b"pixels 0")
        assert str(info.value).startswith("add_photo: upload_photo: monitor_upload:")

    def test_duplicate_in_playlist_tolerated(self, playlist):
        first = playlist.add_photo("a.jpg", b"same content")
        count = playlist.photo_count()
        second = playlist.add_photo("a.jpg", b"same content")
        assert first.id == second.id
        assert playlist.photo_count() == count
        assert playlist.photo_with_id(first.id) is first

    def test_playlist_upload_lands_in_my_uploads(self, playlist, service):
        playlist.add_photo("a.jpg", b"playlist pixels")
        my_uploads = service.albums[service.my_uploads()]
        assert [p["md5"] for p in my_uploads["photos"]] == [hashlib.md5(b"playlist pixels").hexdigest()]


# ---------------------------------------------------------------------------
# Identity and delete
# ---------------------------------------------------------------------------

class TestContainer:
    def test_id_from_kind_and_nixplay_id(self, album, album_id):
        assert album.id == identity.container_id(ContainerType.ALBUM, album_id)

    def test_unique_name(self, playlist):
        assert playlist.generate_unique_name() == f"Frame ({playlist.id.hex()[:16]})"

    def test_delete_album(self, client, album, service, album_id):
        album.delete()
        assert album_id not in service.albums
        assert client.containers_with_name(ContainerType.ALBUM, "Holiday") == []
        assert client.container_with_id(ContainerType.ALBUM, album.id) is None

    def test_delete_playlist(self, client, playlist, service, playlist_id):
        playlist.delete()
        assert service.count("DELETE", f"/v3/playlists/{playlist_id}") == 1
        assert client.containers(ContainerType.PLAYLIST) == []
