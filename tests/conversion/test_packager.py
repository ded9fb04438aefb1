from __future__ import annotations

import io
import zipfile

from convert_hub.conversion.models import Artifact, BatchResult
from convert_hub.conversion.packager import (
    ARCHIVE_COMPRESSION_LEVEL,
    ARCHIVE_FILENAME,
    BatchPackager,
    unique_entry_names,
)


def _artifact(name: str, data: bytes = b"data") -> Artifact:
    return Artifact(data=data, filename=name, mime_type="text/plain")


def test_empty_batch_produces_nothing():
    assert BatchPackager().package(BatchResult()) is None
    assert BatchPackager().package([]) is None


def test_single_artifact_is_returned_unwrapped():
    only = _artifact("report.odt", b"odt-bytes")

    deliverable = BatchPackager().package(BatchResult(artifacts=(only,)))

    assert deliverable is not None
    assert deliverable.data == b"odt-bytes"
    assert deliverable.filename == "report.odt"
    assert deliverable.mime_type == "text/plain"
    assert deliverable.is_archive is False


def test_several_artifacts_are_zipped_with_deflate():
    artifacts = [
        _artifact("a.txt", b"alpha" * 100),
        _artifact("b.txt", b"beta" * 100),
    ]

    deliverable = BatchPackager().package(artifacts)

    assert deliverable is not None
    assert deliverable.filename == ARCHIVE_FILENAME == "converted_files.zip"
    assert deliverable.mime_type == "application/zip"
    assert deliverable.entries == ("a.txt", "b.txt")
    with zipfile.ZipFile(io.BytesIO(deliverable.data)) as archive:
        infos = archive.infolist()
        assert [info.filename for info in infos] == ["a.txt", "b.txt"]
        assert all(
            info.compress_type == zipfile.ZIP_DEFLATED for info in infos
        )
        assert archive.read("b.txt") == b"beta" * 100
    assert ARCHIVE_COMPRESSION_LEVEL == 6


def test_duplicate_entry_names_are_versioned():
    artifacts = [_artifact("photo.png"), _artifact("photo.png")]
    artifacts.append(_artifact("photo.png", b"third"))

    deliverable = BatchPackager().package(artifacts)

    assert deliverable.entries == ("photo.png", "photo-01.png", "photo-02.png")
    with zipfile.ZipFile(io.BytesIO(deliverable.data)) as archive:
        assert archive.read("photo-02.png") == b"third"


def test_unique_entry_names_skips_taken_versions():
    names = unique_entry_names(["a-01.txt", "a.txt", "a.txt"])

    assert names == ["a-01.txt", "a.txt", "a-02.txt"]


def test_custom_archive_name():
    packager = BatchPackager(archive_name="bundle.zip", compression_level=9)

    deliverable = packager.package([_artifact("x.md"), _artifact("y.md")])

    assert deliverable.filename == "bundle.zip"
