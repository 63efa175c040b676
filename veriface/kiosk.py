"""
Verification kiosk.

Drives the camera side of the flow: keeps a live camera open, polls the server
for selfies pushed from another device, and submits selfie + captured frame to
the verification form endpoint. Runs as a single-threaded loop; `tick()` is one
step of it.
"""

import argparse
import logging
import mimetypes
import os
import time
from enum import Enum
from typing import Callable, Optional, Tuple

import cv2
import numpy as np
import requests

from . import settings
from .data_uri import InvalidImagePayload, encode_data_uri, parse_image_data_uri, read_image_file
from .schemas import ErrorResult, FailedResult, VerificationResult, VerifiedResult, verification_result_adapter

logger = logging.getLogger(__name__)

WINDOW_NAME = "VeriFace Kiosk"
VIEW_SIZE = (640, 480)
PREVIEW_SIZE = 128


class KioskState(str, Enum):
    NO_CAMERA_PERMISSION = "no-camera-permission"
    AWAITING_SELFIE = "awaiting-selfie"
    SELFIE_PREVIEW_LOADED = "selfie-preview-loaded"
    SUBMITTING = "submitting"
    RESULT_READY = "result-ready"


class CameraError(Exception):
    pass


class VerificationKiosk:
    def __init__(
        self,
        server_url: str = settings.KIOSK_SERVER_URL,
        camera_index: int = 0,
        poll_interval: float = settings.KIOSK_POLL_INTERVAL_SECONDS,
        auto_submit_delay: float = settings.KIOSK_AUTO_SUBMIT_DELAY_SECONDS,
        auto_submit: bool = True,
        output_dir: str = settings.KIOSK_OUTPUT_DIR,
        session: Optional[requests.Session] = None,
        capture_factory: Callable = cv2.VideoCapture,
        clock: Callable[[], float] = time.monotonic,
        request_timeout: Optional[float] = None,
    ):
        self.server_url = server_url.rstrip("/")
        self.camera_index = camera_index
        self.poll_interval = poll_interval
        self.auto_submit_delay = auto_submit_delay
        self.auto_submit = auto_submit
        self.output_dir = output_dir
        self.session = session or requests.Session()
        self.capture_factory = capture_factory
        self.clock = clock
        self.request_timeout = request_timeout

        # None until the camera has been requested
        self.state: Optional[KioskState] = None
        self.camera = None
        self.selfie_preview: Optional[str] = None
        self.last_processed: Optional[Tuple[str, object]] = None
        self.result: Optional[VerificationResult] = None
        self.last_enhanced_path: Optional[str] = None
        # Transient message shown until the next preview or result
        self.notice: Optional[str] = None

        self._next_poll_at = 0.0
        self._auto_submit_at: Optional[float] = None
        self._preview_image = None

    # ===== Camera =====
    def start_camera(self) -> bool:
        """Open the camera. A refusal is final for this kiosk session."""
        try:
            camera = self.capture_factory(self.camera_index)
        except cv2.error as e:
            logger.error(f"Error accessing camera: {e}")
            camera = None

        if camera is None or not camera.isOpened():
            logger.error("Camera access denied or unavailable")
            self.state = KioskState.NO_CAMERA_PERMISSION
            return False

        self.camera = camera
        self.state = KioskState.SELFIE_PREVIEW_LOADED if self.selfie_preview else KioskState.AWAITING_SELFIE
        logger.info(f"Camera {self.camera_index} opened")
        return True

    def stop(self):
        if self.camera is not None:
            self.camera.release()
            self.camera = None

    def capture_frame(self) -> np.ndarray:
        if self.camera is None:
            raise CameraError("Camera access is required for CCTV footage.")
        ok, frame = self.camera.read()
        if not ok or frame is None or frame.size == 0:
            raise CameraError("Camera feed is not ready or has invalid dimensions. Please wait a moment.")
        return frame

    def capture_frame_data_uri(self) -> str:
        frame = self.capture_frame()
        ok, buf = cv2.imencode(".jpg", frame)
        if not ok:
            raise CameraError("Failed to capture video frame.")
        return encode_data_uri(buf.tobytes(), "image/jpeg")

    # ===== Selfie sources =====
    def _set_preview(self, data_uri: str):
        self.selfie_preview = data_uri
        self.notice = None
        self._preview_image = None
        if self.state != KioskState.NO_CAMERA_PERMISSION:
            self.state = KioskState.SELFIE_PREVIEW_LOADED

    def poll_once(self, now: Optional[float] = None) -> bool:
        """
        Fetch the latest remote selfie once.

        Returns:
            True if a selfie not seen before was loaded
        """
        now = self.clock() if now is None else now
        try:
            resp = self.session.get(f"{self.server_url}/api/get-latest-selfie", timeout=10)
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Polling for selfie failed: {e}")
            return False

        data_uri = data.get("selfieDataUri") if isinstance(data, dict) else None
        if not data_uri:
            return False

        # Servers that report a version are deduplicated on it; otherwise on the payload
        version = data.get("version")
        token = ("version", version) if version is not None else ("payload", data_uri)
        if token == self.last_processed:
            return False

        self.last_processed = token
        self._set_preview(data_uri)
        logger.info(f"New remote selfie received (version {version})")

        if self.auto_submit:
            self._auto_submit_at = now + self.auto_submit_delay
        return True

    def load_local_selfie(self, path: str):
        """Use a selfie from disk; forget the last remote selfie so the next one is not skipped."""
        self._set_preview(read_image_file(path))
        self.last_processed = None
        self._auto_submit_at = None
        logger.info(f"Loaded local selfie {path}")

    # ===== Auto-submit =====
    def set_auto_submit(self, enabled: bool):
        self.auto_submit = enabled
        if not enabled:
            self._auto_submit_at = None
        logger.info(f"Auto-submit {'enabled' if enabled else 'disabled'}")

    def toggle_auto_submit(self) -> bool:
        self.set_auto_submit(not self.auto_submit)
        return self.auto_submit

    @property
    def auto_submit_pending(self) -> bool:
        return self._auto_submit_at is not None

    # ===== Verification =====
    def submit(self) -> VerificationResult:
        """Capture the current frame and verify it against the loaded selfie."""
        self._auto_submit_at = None

        if not self.selfie_preview:
            return self._finish(ErrorResult(message="Selfie image is required (either uploaded or provided programmatically)."))
        if self.camera is None:
            return self._finish(ErrorResult(message="Camera access is required for CCTV footage."))

        try:
            frame_uri = self.capture_frame_data_uri()
        except CameraError as e:
            logger.error(f"Capture error: {e}")
            self.notice = f"Capture Error: {e}"
            self.result = ErrorResult(message=str(e))
            self.render_result(self.result)
            return self.result

        self.state = KioskState.SUBMITTING
        logger.info("Verifying...")
        return self._finish(self._post_verification(self.selfie_preview, frame_uri))

    def _finish(self, result: VerificationResult) -> VerificationResult:
        self.result = result
        self.notice = None
        if self.state != KioskState.NO_CAMERA_PERMISSION:
            self.state = KioskState.RESULT_READY
        self.render_result(result)
        return result

    def _post_verification(self, selfie_uri: str, frame_uri: str) -> VerificationResult:
        # Multipart text fields, as a browser form would send them
        fields = {
            "programmaticSelfieDataUri": (None, selfie_uri),
            "cctvDataUri": (None, frame_uri),
        }
        try:
            resp = self.session.post(f"{self.server_url}/verify", files=fields, timeout=self.request_timeout)
            resp.raise_for_status()
            return verification_result_adapter.validate_python(resp.json())
        except requests.RequestException as e:
            logger.error(f"Verification request failed: {e}")
            return ErrorResult(message=f"Verification request failed: {e}")
        except ValueError as e:
            logger.error(f"Unexpected verification response: {e}")
            return ErrorResult(message="Unexpected response from verification server.")

    def render_result(self, result: VerificationResult):
        if isinstance(result, VerifiedResult):
            logger.info(f"✓ Verification Successful: {result.message}")
        elif isinstance(result, FailedResult):
            logger.warning(f"✗ Verification Failed: {result.message} AI Summary: {result.summary}")
            self.last_enhanced_path = self._save_enhanced(result.enhancedImageUri)
        else:
            logger.error(f"⚠ Verification Error: {result.message}")

    def _save_enhanced(self, data_uri: str) -> Optional[str]:
        if not self.output_dir or not data_uri:
            return None
        try:
            payload = parse_image_data_uri(data_uri, "enhancedImageUri")
        except InvalidImagePayload as e:
            logger.warning(f"Enhanced image not saved: {e}")
            return None
        os.makedirs(self.output_dir, exist_ok=True)
        ext = mimetypes.guess_extension(payload.mime_type) or ".img"
        path = os.path.join(self.output_dir, f"enhanced_{int(time.time() * 1000)}{ext}")
        with open(path, "wb") as f:
            f.write(payload.data)
        logger.info(f"Enhanced CCTV image saved to {path}")
        return path

    # ===== Loop =====
    def tick(self, now: Optional[float] = None):
        """Poll when the interval is up and fire a due auto-submit."""
        now = self.clock() if now is None else now
        if now >= self._next_poll_at:
            self._next_poll_at = now + self.poll_interval
            self.poll_once(now)
        if self._auto_submit_at is not None and now >= self._auto_submit_at:
            self._auto_submit_at = None
            if self.auto_submit:
                self.submit()

    def status_line(self) -> str:
        auto = "auto" if self.auto_submit else "manual"
        if self.state is None:
            text = "Initializing camera..."
        elif self.state == KioskState.NO_CAMERA_PERMISSION:
            text = "Camera access denied"
        elif self.notice:
            text = self.notice
        elif self.state == KioskState.AWAITING_SELFIE:
            text = "Waiting for selfie"
        elif self.state == KioskState.SELFIE_PREVIEW_LOADED:
            text = "Selfie loaded - press s to verify"
        elif self.state == KioskState.SUBMITTING:
            text = "Verifying..."
        elif isinstance(self.result, VerifiedResult):
            text = "Verification Successful"
        elif isinstance(self.result, FailedResult):
            text = f"Verification Failed: {self.result.summary}"
        else:
            text = f"Verification Error: {self.result.message if self.result else ''}"
        return f"[{auto}] {text}"

    def _status_color(self):
        if self.notice:
            return (0, 0, 255)
        if isinstance(self.result, VerifiedResult) and self.state == KioskState.RESULT_READY:
            return (0, 200, 0)
        if self.state in (KioskState.RESULT_READY, KioskState.NO_CAMERA_PERMISSION):
            return (0, 0, 255)
        return (255, 255, 255)

    def _selfie_thumbnail(self):
        if self._preview_image is None and self.selfie_preview:
            try:
                payload = parse_image_data_uri(self.selfie_preview, "selfie")
            except InvalidImagePayload:
                return None
            img = cv2.imdecode(np.frombuffer(payload.data, np.uint8), cv2.IMREAD_COLOR)
            if img is not None:
                self._preview_image = cv2.resize(img, (PREVIEW_SIZE, PREVIEW_SIZE))
        return self._preview_image

    def render_view(self) -> np.ndarray:
        """Current camera frame with the selfie thumbnail and status banner drawn on it."""
        frame = None
        if self.camera is not None:
            ok, frame = self.camera.read()
            if not ok:
                frame = None
        if frame is None:
            frame = np.zeros((VIEW_SIZE[1], VIEW_SIZE[0], 3), np.uint8)
        else:
            frame = frame.copy()

        thumb = self._selfie_thumbnail()
        h, w = frame.shape[:2]
        if thumb is not None and h > PREVIEW_SIZE + 10 and w > PREVIEW_SIZE + 10:
            frame[10:10 + PREVIEW_SIZE, w - PREVIEW_SIZE - 10:w - 10] = thumb

        cv2.rectangle(frame, (0, h - 36), (w, h), (0, 0, 0), -1)
        cv2.putText(frame, self.status_line()[:80], (8, h - 12), cv2.FONT_HERSHEY_SIMPLEX, 0.5,
                    self._status_color(), 1, cv2.LINE_AA)
        return frame

    def run(self, show_window: bool = True):
        """Main loop. Keys (window mode): s = submit, a = toggle auto-submit, q = quit."""
        if self.state is None:
            self.start_camera()
        try:
            while True:
                self.tick()
                if show_window:
                    try:
                        cv2.imshow(WINDOW_NAME, self.render_view())
                    except cv2.error as e:
                        # opencv-python-headless has no GUI backend
                        logger.warning(f"Preview window unavailable, continuing headless: {e}")
                        show_window = False
                        continue
                    key = cv2.waitKey(30) & 0xFF
                    if key == ord("q"):
                        break
                    if key == ord("s"):
                        self.submit()
                    elif key == ord("a"):
                        self.toggle_auto_submit()
                else:
                    time.sleep(0.1)
        except KeyboardInterrupt:
            logger.info("Stopping kiosk")
        finally:
            self.stop()
            if show_window:
                cv2.destroyAllWindows()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="VeriFace camera kiosk")
    parser.add_argument("--server", default=settings.KIOSK_SERVER_URL, help="VeriFace API base URL")
    parser.add_argument("--camera", type=int, default=0, help="OpenCV camera index")
    parser.add_argument("--selfie", help="Local selfie image to load at start")
    parser.add_argument("--once", action="store_true", help="Verify --selfie against one frame and exit")
    parser.add_argument("--no-auto-submit", action="store_true", help="Do not verify remote selfies automatically")
    parser.add_argument("--poll-interval", type=float, default=settings.KIOSK_POLL_INTERVAL_SECONDS)
    parser.add_argument("--auto-submit-delay", type=float, default=settings.KIOSK_AUTO_SUBMIT_DELAY_SECONDS)
    parser.add_argument("--output-dir", default=settings.KIOSK_OUTPUT_DIR, help="Where to save enhanced images")
    parser.add_argument("--headless", action="store_true", help="No preview window")
    args = parser.parse_args(argv)

    logging.basicConfig(level=settings.LOG_LEVEL)

    kiosk = VerificationKiosk(
        server_url=args.server,
        camera_index=args.camera,
        poll_interval=args.poll_interval,
        auto_submit_delay=args.auto_submit_delay,
        auto_submit=not args.no_auto_submit,
        output_dir=args.output_dir,
    )

    if args.selfie:
        try:
            kiosk.load_local_selfie(args.selfie)
        except (OSError, InvalidImagePayload) as e:
            logger.error(f"Cannot load selfie: {e}")
            return 2

    if not kiosk.start_camera():
        return 1

    if args.once:
        if not args.selfie:
            parser.error("--once requires --selfie")
        try:
            result = kiosk.submit()
        finally:
            kiosk.stop()
        return 0 if isinstance(result, VerifiedResult) else 1

    kiosk.run(show_window=not args.headless)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
