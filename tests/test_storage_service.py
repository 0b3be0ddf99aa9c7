import base64
import re

import pytest

from chat_sync.services.storage_service import MediaStorageService, MediaUploadError, generate_media_filename

PDF = "data:application/pdf;base64," + base64.b64encode(b"%PDF-1.4\n" + b"0" * 64).decode()


@pytest.fixture
def storage(supabase):
    return MediaStorageService(client=supabase, bucket="media-files")


def test_generated_filenames():
    name = generate_media_filename("image/jpeg")
    assert re.match(r"^media_\d{13}_[a-z0-9]{9}\.jpg$", name)
    assert generate_media_filename("application/zip").endswith(".bin")


def test_upload_base64_stores_bytes(supabase, storage):
    result = storage.upload_base64(PDF)

    assert result.mime_type == "application/pdf"
    assert result.path.endswith(".pdf")
    assert result.url == f"https://test-project.supabase.co/storage/v1/object/public/media-files/{result.path}"

    content, options = supabase.storage.objects[("media-files", result.path)]
    assert content.startswith(b"%PDF")
    assert result.size == len(content)
    assert options["content-type"] == "application/pdf"
    assert options["upsert"] == "true"


def test_invalid_payload_rejected(storage):
    with pytest.raises(MediaUploadError):
        storage.upload_base64("data:image/png;base64,@@@@")


def test_upload_failure_raises(supabase, storage):
    supabase.storage.fail_uploads = True
    with pytest.raises(MediaUploadError):
        storage.upload("a.bin", b"1234", "application/octet-stream")
