# votesecure/authentication/face_matching.py

import base64
import logging
import requests
from votesecure.errors import DependencyError

# Face matching is delegated to an external service; this module only defines
# the seam and an HTTP client for it.

logger = logging.getLogger(__name__)

FACE_SERVICE_ERROR = "FACE_SERVICE_ERROR"


class FaceMatcher:
    def match(self, captured: bytes, reference: bytes) -> bool:
        raise NotImplementedError


class UnconfiguredFaceMatcher(FaceMatcher):
    """Fails closed: without a matching service no face can be verified."""

    def match(self, captured, reference):
        logger.error("Face verification requested but FACE_MATCH_URL is not configured")
        raise DependencyError("Face verification service is unavailable. Please try again later.",
                              code=FACE_SERVICE_ERROR, status_code=503)


class HttpFaceMatcher(FaceMatcher):
    """POSTs both images to ``{url}`` and reads ``{"match": bool}`` back."""

    def __init__(self, url, timeout=10):
        self.url = url
        self.timeout = timeout

    def match(self, captured, reference):
        payload = {
            "captured_image": base64.b64encode(captured).decode(),
            "reference_image": base64.b64encode(reference).decode(),
        }
        try:
            response = requests.post(self.url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error("Face match request failed: %s", e)
            raise DependencyError("Face verification service is unavailable. Please try again later.",
                                  code=FACE_SERVICE_ERROR, status_code=503)
        if response.status_code != 200:
            logger.error("Face match service returned %s: %s", response.status_code, response.text[:200])
            raise DependencyError("Face verification service returned an error.",
                                  code=FACE_SERVICE_ERROR)
        try:
            result = response.json()
        except ValueError:
            raise DependencyError("Face verification service returned an invalid response.",
                                  code=FACE_SERVICE_ERROR)
        return bool(result.get("match", False))
