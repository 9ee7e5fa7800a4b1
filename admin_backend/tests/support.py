"""
Shared fixtures: a fresh backend per test with two languages.

Suites run on SQLite by default; override ``make_backend`` to run them on
another backend.
"""

import unittest

from admin_backend.files import FileManager
from admin_backend.intake import UploadedFile
from admin_backend.languages import LanguageDirectory
from admin_backend.persistence.sql import SqlBackend
from admin_backend.seed import seed_languages
from admin_backend.storage import InMemoryStorageClient

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TEST_LANGUAGES = (
    {"name": "English", "folder": "en", "iso2": "EN", "iso3": "ENG", "is_default": True},
    {"name": "Español", "folder": "es", "iso2": "ES", "iso3": "SPA"},
)

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 24


def png_upload(name="banner.png", data=PNG_BYTES, field_name="file"):
    return UploadedFile(
        buffer=data,
        original_name=name,
        mimetype="image/png",
        size=len(data),
        field_name=field_name,
    )


class RecordingStorageClient(InMemoryStorageClient):
    """In-memory storage that also records the order of writes and deletes."""

    def __post_init__(self):
        super().__post_init__()
        self.operations = []

    def put(self, path, data, content_type):
        self.operations.append(("put", path))
        super().put(path, data, content_type)

    def delete(self, path):
        self.operations.append(("delete", path))
        super().delete(path)


class BackendTestCase(unittest.IsolatedAsyncioTestCase):
    languages = TEST_LANGUAGES

    async def asyncSetUp(self):
        self.backend = self.make_backend()
        await self.backend.init_schema()
        seeded = await seed_languages(self.backend.languages, self.languages)
        self.langs = {language.folder: language for language in seeded}
        self.storage = RecordingStorageClient()
        self.files = FileManager(self.storage)
        self.directory = LanguageDirectory(self.backend.languages)

    async def asyncTearDown(self):
        await self.backend.close()

    def make_backend(self):
        return SqlBackend(TEST_DATABASE_URL)
