import io

import numpy as np
import pytest
from fastapi.testclient import TestClient
from PIL import Image

from veriface import settings
from veriface.gemini_client import JUDGMENT_SENTINEL
from veriface.mailbox import SelfieMailbox
from veriface.main import app, get_mailbox, get_verification_service

SELFIE_URI = "data:image/png;base64,AAA="
CCTV_URI = "data:image/png;base64,BBB="
ENHANCED_URI = "data:image/png;base64,CCC="


class FakeVerificationService:
    """Records calls; answers with canned judgments."""

    def __init__(self, judgment=JUDGMENT_SENTINEL, enhanced=ENHANCED_URI):
        self.judgment = judgment
        self.enhanced = enhanced
        self.match_error = None
        self.enhance_error = None
        self.match_calls = []
        self.enhance_calls = []

    def summarize_match(self, selfie_data_uri, cctv_data_uri):
        self.match_calls.append((selfie_data_uri, cctv_data_uri))
        if self.match_error:
            raise self.match_error
        return self.judgment

    def enhance_image(self, image_data_uri):
        self.enhance_calls.append(image_data_uri)
        if self.enhance_error:
            raise self.enhance_error
        return self.enhanced


class FakeCamera:
    def __init__(self, opened=True, frame=None):
        self.opened = opened
        self.frame = np.zeros((48, 64, 3), np.uint8) if frame is None else frame
        self.released = False

    def isOpened(self):
        return self.opened

    def read(self):
        if self.frame is None:
            return False, None
        return True, self.frame

    def release(self):
        self.released = True


def png_bytes(size=(8, 8), color=(200, 120, 40)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture(autouse=True)
def default_settings(monkeypatch):
    monkeypatch.setattr(settings, "SELFIE_POLL_MODE", "peek")
    monkeypatch.setattr(settings, "INTAKE_API_KEY", "")
    monkeypatch.setattr(settings, "MAX_SELFIE_MB", 5)


@pytest.fixture
def mailbox():
    return SelfieMailbox()


@pytest.fixture
def fake_service():
    return FakeVerificationService()


@pytest.fixture
def client(mailbox, fake_service):
    app.dependency_overrides[get_mailbox] = lambda: mailbox
    app.dependency_overrides[get_verification_service] = lambda: fake_service
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
