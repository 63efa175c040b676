"""
Remote selfie sender.
Pushes a selfie from this machine to a running VeriFace API, the way a phone
would, or checks that the API is up.
"""

import argparse
import logging
from pathlib import Path
from typing import Dict, Optional

import requests

from . import settings
from .data_uri import InvalidImagePayload, read_image_file

logger = logging.getLogger(__name__)


def send_selfie(selfie_path: str, api_url: str = settings.KIOSK_SERVER_URL,
                api_key: Optional[str] = None, session=None) -> Optional[Dict]:
    """
    Post a selfie to the photo intake endpoint.

    Args:
        selfie_path: Path to selfie image
        api_url: Base URL of the API
        api_key: Intake key, if the server requires one

    Returns:
        Parsed JSON response on success, None otherwise
    """
    endpoint = f"{api_url.rstrip('/')}/api/receive-photo"
    http = session or requests

    if not Path(selfie_path).exists():
        print(f"❌ Error: Selfie file not found: {selfie_path}")
        return None

    try:
        data_uri = read_image_file(selfie_path)
    except InvalidImagePayload as e:
        print(f"❌ Error: {e}")
        return None

    headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}

    print(f"📤 Sending selfie to {endpoint}")
    print(f"   Selfie: {selfie_path} ({len(data_uri)} chars)")

    try:
        response = http.post(endpoint, json={"selfieDataUri": data_uri}, headers=headers, timeout=30)
        result = response.json()
    except requests.exceptions.ConnectionError:
        logger.error(f"Could not connect to {endpoint}")
        print("❌ Connection Error: Could not connect to the API.")
        print("   Make sure the API is running at:", api_url)
        return None
    except ValueError:
        logger.error(f"Non-JSON response from {endpoint}")
        print(f"❌ ERROR! Non-JSON response (status {response.status_code})")
        return None

    if response.status_code == 200:
        print("✅ SUCCESS!")
        print(f"   Message: {result.get('message')}")
        print(f"   Version: {result.get('version')}")
        return result

    print("❌ ERROR!")
    print(f"   Status Code: {response.status_code}")
    print(f"   Message: {result.get('message', 'Unknown')}")
    for field, problems in (result.get("errors") or {}).items():
        print(f"   {field}: {' '.join(problems)}")
    return None


def check_health(api_url: str = settings.KIOSK_SERVER_URL, session=None) -> bool:
    """Test the health check endpoint."""
    endpoint = f"{api_url.rstrip('/')}/health"
    http = session or requests

    print(f"🏥 Testing health check: {endpoint}")

    try:
        response = http.get(endpoint, timeout=10)
    except requests.exceptions.ConnectionError:
        logger.error(f"Could not connect to {endpoint}")
        print("❌ Connection Error: Could not connect to the API.")
        print("   Make sure the API is running at:", api_url)
        return False

    if response.status_code != 200:
        print(f"❌ Health check failed with status code: {response.status_code}")
        return False

    try:
        result = response.json()
    except ValueError:
        logger.warning(f"Health endpoint returned non-JSON body from {endpoint}")
        print("❌ Health check failed: response was not JSON")
        return False

    print("✅ API is healthy!")
    print(f"   Service: {result.get('service')}")
    print(f"   Poll mode: {result.get('poll_mode')}")
    print(f"   Match model: {result.get('match_model')}")
    return True


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Send a selfie to a VeriFace API",
        epilog="Examples: veriface-send health | veriface-send selfie.jpg --server http://192.168.1.100:8000",
    )
    parser.add_argument("target", help="Path to selfie image, or 'health'")
    parser.add_argument("--server", default=settings.KIOSK_SERVER_URL, help="API base URL")
    parser.add_argument("--api-key", default=settings.INTAKE_API_KEY or None, help="Intake API key")
    args = parser.parse_args(argv)

    logging.basicConfig(level=settings.LOG_LEVEL)

    if args.target == "health":
        return 0 if check_health(args.server) else 1
    return 0 if send_selfie(args.target, args.server, api_key=args.api_key) else 1


if __name__ == "__main__":
    raise SystemExit(main())
