"""
Shared helpers for tests that go through the JSON files on disk.
"""
import json
import tempfile
from pathlib import Path

from django.test import override_settings


class TempDataDirMixin:
    """Point ``STOREFRONT_DATA_DIR`` at a fresh temporary directory for each test."""

    def setUp(self):
        super().setUp()
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        override = override_settings(STOREFRONT_DATA_DIR=tmp.name)
        override.enable()
        self.addCleanup(override.disable)
        self.data_dir = Path(tmp.name)

    def write_document(self, filename: str, data: dict):
        (self.data_dir / filename).write_text(json.dumps(data))

    def read_document(self, filename: str) -> dict:
        return json.loads((self.data_dir / filename).read_text())

    def post_json(self, path: str, payload: dict, **extra):
        return self.client.post(path, data=json.dumps(payload), content_type="application/json", **extra)
